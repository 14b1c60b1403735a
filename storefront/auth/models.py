import enum
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from storefront import db


class RoleEnum(enum.Enum):
    customer = "customer"
    seller   = "seller"
    admin    = "admin"


class User(db.Model):
    """A storefront account (customer, seller or admin)."""
    __tablename__ = 'users'

    id            = db.Column(db.Integer, primary_key=True)
    name          = db.Column(db.String(120), nullable=False)
    email         = db.Column(db.String(254), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role          = db.Column(db.Enum(RoleEnum), nullable=False, default=RoleEnum.customer)
    is_active     = db.Column(db.Boolean, nullable=False, default=True)
    created_at    = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # ── Password helpers ──────────────────────────────────────────
    def set_password(self, plain_password: str) -> None:
        """Hash and store the password. Never stores plain text."""
        self.password_hash = generate_password_hash(plain_password)

    def check_password(self, plain_password: str) -> bool:
        """Return True if the supplied password matches the stored hash."""
        return check_password_hash(self.password_hash, plain_password)

    # ── Convenience ───────────────────────────────────────────────
    @property
    def is_staff(self) -> bool:
        return self.role in (RoleEnum.admin, RoleEnum.seller)

    def to_dict(self) -> dict:
        return {
            'id':    self.id,
            'name':  self.name,
            'email': self.email,
            'role':  self.role.value,
        }

    def __repr__(self) -> str:
        return f"<User {self.email!r} role={self.role.value!r}>"
