"""
Baaseteen Case Workflow
Identity & RBAC models.

Models:
    - User: staff member; carries a single role name
    - Role: named role (admin, dcm, counselor, welfare_reviewer, ...)
    - RolePermission: (role, resource, action) grant
"""

from datetime import datetime, timezone

from baaseteen.models import db


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    full_name = db.Column(db.String(200))
    email = db.Column(db.String(255))
    role = db.Column(db.String(100), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def display_name(self):
        return self.full_name or self.username

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.username} ({self.role})>"


# ═══════════════════════════════════════════════════════════════
# 2. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    display_name = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    role_permissions = db.relationship(
        "RolePermission", back_populates="role", lazy="dynamic", cascade="all, delete-orphan"
    )

    def to_dict(self, include_permissions=False):
        d = {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "is_active": self.is_active,
        }
        if include_permissions:
            d["permissions"] = sorted(rp.codename for rp in self.role_permissions)
        return d


# ═══════════════════════════════════════════════════════════════
# 3. ROLE_PERMISSIONS
# ═══════════════════════════════════════════════════════════════
class RolePermission(db.Model):
    __tablename__ = "role_permissions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    resource = db.Column(db.String(100), nullable=False)  # e.g. "cases"
    action = db.Column(db.String(100), nullable=False)  # e.g. "update_status"

    __table_args__ = (
        db.UniqueConstraint("role_id", "resource", "action", name="uq_role_resource_action"),
    )

    role = db.relationship("Role", back_populates="role_permissions")

    @property
    def codename(self):
        return f"{self.resource}.{self.action}"
