"""Admin directory — who may edit what.

An admin is anyone with a document in admin_users, keyed by auth uid.
The document's role and permission flags are the only source of
authority: every admin write route calls require_permission() before
touching a store. Role super_admin implies every permission.

The first super admin is bootstrapped by setup_first_admin(), gated on
the ADMIN_EMAILS allow-list.

Tier 3 service: imports hooks, schemas, errors.
"""

import logging

from mahuru.errors import PermissionDeniedError
from mahuru.hooks.interfaces import DocumentStore
from mahuru.schemas import (
    AdminPermissions,
    AdminUser,
    Identity,
    Permission,
    to_document,
    utc_now,
)

logger = logging.getLogger(__name__)

ADMIN_USERS = "admin_users"


class AdminDirectory:
    """Reads and grants admin_users records.

    Args:
        store: The document store.
        allowed_emails: Addresses permitted to bootstrap a super admin,
            already lower-cased.
    """

    def __init__(self, store: DocumentStore, allowed_emails: frozenset[str] = frozenset()) -> None:
        self._store = store
        self._allowed_emails = allowed_emails

    async def get_admin(self, uid: str) -> AdminUser | None:
        doc = await self._store.get(ADMIN_USERS, uid)
        return AdminUser.model_validate(doc) if doc is not None else None

    async def check_admin_access(self, uid: str) -> bool:
        return await self.get_admin(uid) is not None

    async def has_permission(self, uid: str, permission: Permission) -> bool:
        admin = await self.get_admin(uid)
        return admin is not None and admin.can(permission)

    async def require_permission(self, uid: str, permission: Permission) -> AdminUser:
        """Returns the admin record if it grants permission.

        Raises:
            PermissionDeniedError: Not an admin, or the flag is not set.
        """
        admin = await self.get_admin(uid)
        if admin is None:
            raise PermissionDeniedError("Admin access required.")
        if not admin.can(permission):
            logger.warning("Admin %s denied %s", uid, permission)
            raise PermissionDeniedError(f"Missing permission: {permission}.")
        return admin

    async def require_super_admin(self, uid: str) -> AdminUser:
        admin = await self.get_admin(uid)
        if admin is None or admin.role != "super_admin":
            raise PermissionDeniedError("Super admin access required.")
        return admin

    async def record_login(self, uid: str) -> None:
        await self._store.set(
            ADMIN_USERS, uid, {"lastLogin": utc_now().isoformat()}, merge=True
        )

    def is_allowed_email(self, email: str) -> bool:
        return email.strip().lower() in self._allowed_emails

    async def grant_super_admin(self, uid: str, email: str, display_name: str | None = None) -> AdminUser:
        """Writes a super_admin record with every permission flag set."""
        admin = AdminUser(
            uid=uid,
            email=email,
            display_name=display_name,
            role="super_admin",
            permissions=AdminPermissions.all_granted(),
        )
        await self._store.set(ADMIN_USERS, uid, to_document(admin))
        logger.info("Granted super_admin to %s", uid)
        return admin

    async def setup_first_admin(self, identity: Identity) -> AdminUser:
        """Bootstraps a super admin for an allow-listed address.

        Idempotent: an existing admin record is returned unchanged.

        Raises:
            PermissionDeniedError: The email is not on the allow-list.
        """
        if not self.is_allowed_email(identity.email):
            raise PermissionDeniedError("This email is not authorised for admin setup.")
        existing = await self.get_admin(identity.uid)
        if existing is not None:
            return existing
        return await self.grant_super_admin(
            identity.uid, identity.email, identity.display_name or None
        )
