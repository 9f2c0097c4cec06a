"""
Seed script to populate the permission catalog and default role policies.

Run this script after database initialization to create:
- The e-learning permission catalog
- Baseline permissions for the User, Instructor, Admin and SuperAdmin roles

Existing permissions are kept; role policies are replaced with the defaults
below.

Usage:
    python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.permissions.models import Permission
from app.features.permissions.service import RolePolicyManager
from app.features.permissions.store import SqlAlchemyPermissionStore
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # Learning content
    ("view_topics", "Browse topics"),
    ("create_topic", "Create topics"),
    ("edit_topic", "Edit topics"),
    ("delete_topic", "Delete topics"),
    ("edit_syllabus", "Edit course syllabus"),

    # Quizzes
    ("take_quiz", "Attempt quizzes"),
    ("create_quiz", "Create quizzes"),
    ("edit_quiz", "Edit quizzes"),
    ("publish_quiz", "Publish and unpublish quizzes"),
    ("view_quiz_attempts", "View quiz attempts of students"),

    # Students and calls
    ("view_students", "View enrolled students"),
    ("start_call", "Start practice calls"),
    ("view_call_history", "View call history"),

    # Commerce
    ("manage_coupons", "Create, edit and delete coupons"),
    ("view_wallet", "View own wallet"),
    ("withdraw_wallet", "Withdraw wallet balance"),
    ("view_payments", "View payment records"),

    # Administration
    ("view_users", "View user accounts"),
    ("manage_users", "Create, edit and deactivate users"),
    ("review_instructors", "Approve or reject instructors"),
    ("view_dashboard", "View admin dashboard statistics"),
    ("manage_permissions", "Manage role and user permissions"),
]


DEFAULT_ROLE_PERMISSIONS = {
    "SuperAdmin": "ALL",
    "Admin": [
        "view_topics", "create_topic", "edit_topic", "delete_topic",
        "view_quiz_attempts", "view_students",
        "manage_coupons", "view_payments",
        "view_users", "manage_users", "review_instructors", "view_dashboard",
    ],
    "Instructor": [
        "view_topics", "create_topic", "edit_topic", "edit_syllabus",
        "create_quiz", "edit_quiz", "publish_quiz", "view_quiz_attempts",
        "view_students",
        "view_wallet", "withdraw_wallet",
    ],
    "User": [
        "view_topics",
        "take_quiz",
        "start_call", "view_call_history",
        "view_wallet",
    ],
}


async def seed_permissions(db: AsyncSession) -> list[str]:
    """
    Create missing catalog entries.

    Returns:
        Names of all default permissions
    """
    log.info("Creating default permissions...")

    result = await db.execute(select(Permission.name))
    existing = set(result.scalars().all())

    for name, description in DEFAULT_PERMISSIONS:
        if name in existing:
            log.debug(f"Permission '{name}' already exists, skipping")
            continue
        db.add(Permission(name=name, description=description))
        log.info(f"Created permission: {name}")

    await db.commit()
    return [name for name, _ in DEFAULT_PERMISSIONS]


async def seed_roles(db: AsyncSession, permission_names: list[str]):
    """Replace each default role's policy with its default permission list."""
    log.info("Assigning default role permissions...")
    policies = RolePolicyManager(SqlAlchemyPermissionStore(db))

    for role, permissions in DEFAULT_ROLE_PERMISSIONS.items():
        names = permission_names if permissions == "ALL" else permissions
        assigned = await policies.set_role_permissions(role, names)
        log.info(f"Role '{role}' has {len(assigned)} permissions")


async def main():
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            permission_names = await seed_permissions(db)
            await seed_roles(db, permission_names)
            log.info("Permission seeding completed successfully!")
        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(main())
