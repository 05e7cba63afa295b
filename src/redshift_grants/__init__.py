"""Redshift Grants package."""

from redshift_grants.core import SchemaGroupPrivilegeResource
from redshift_grants.core import create_privilege
from redshift_grants.core import delete_privilege
from redshift_grants.core import import_privilege
from redshift_grants.core import privilege_exists
from redshift_grants.core import read_privilege
from redshift_grants.core import update_privilege
from redshift_grants.models import Privilege
from redshift_grants.models import SchemaGroupPrivilege
from redshift_grants.models import SchemaGroupPrivilegeId

SELECT = Privilege.SELECT
INSERT = Privilege.INSERT
UPDATE = Privilege.UPDATE
DELETE = Privilege.DELETE
REFERENCES = Privilege.REFERENCES
