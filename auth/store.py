"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
  UserStore       -- administrator accounts and their role assignments.
  RoleStore       -- role definitions; seeds the built-in roles at startup.
  RevocationStore -- tokens rejected before their natural expiry (logout).
_row_to_user / _row_to_role are the mappers. Service code never touches SQL.

All three repositories share one Engine built by make_engine(), so a test can
point every store at the same in-memory database.

Security:
  All queries use bound parameters. No f-strings in SQL.

Bootstrap guard:
  super_admin_claim is a single-row table (CHECK (id = 1)). create_super_admin()
  inserts the claim, the user and the role link in one transaction, so a second
  bootstrap fails with IntegrityError even if two processes race past the
  "no users yet" check. RegistrationService maps that IntegrityError to Conflict.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.models import SUPER_ADMIN_CODE, RevocationRecord, Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "admin_users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(255), unique=True),  # optional display handle
    Column("firstname", String(255)),
    Column("lastname", String(255)),
    Column("hashed_password", Text),  # NULL until an invitee registers
    Column("is_active", Integer, nullable=False, server_default="0"),
    Column("registration_token", String(64), unique=True),
    Column("reset_password_token", String(64), unique=True),  # HMAC-SHA256 hex
    Column("reset_password_expires", String(32)),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "admin_roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("code", String(100), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
)

_user_roles = Table(
    "admin_users_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("admin_users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("admin_roles.id", ondelete="CASCADE"), primary_key=True),
)

_super_admin_claim = Table(
    "super_admin_claim",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("admin_users.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
    CheckConstraint("id = 1", name="single_super_admin"),
)

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("token", Text, primary_key=True),
    Column("revoked_at", String(32), nullable=False),
    Column("expires_at", String(32)),  # token's natural expiry; NULL = keep forever
)

# Built-in roles seeded on startup. Only the super-admin role matters to the
# auth core; the others exist so invitations have something to assign.
_DEFAULT_ROLES = (
    ("Super Admin", SUPER_ADMIN_CODE, "Super Admins can access and manage all features and settings."),
    ("Editor", "strapi-editor", "Editors can manage and publish contents including those of other users."),
    ("Author", "strapi-author", "Authors can manage the content they have created."),
)

_ONE_TIME_TOKEN_FIELDS = frozenset({"registration_token", "reset_password_token"})


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL (readers never block on writers) and foreign keys.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def make_engine(db_url: str) -> Engine:
    """Create the shared Engine and make sure every auth table exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for administrator accounts.

    Usage:
        engine = make_engine("sqlite:///adminauth.db")
        users = UserStore(engine)
        uid = users.create_user(User(email="kai@example.com", is_active=True))
        user = users.get_by_email("kai@example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def exists(self) -> bool:
        """Return True if at least one administrator account exists (pending invites included)."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a user plus its role links and return the new id.

        Raises IntegrityError if the email (or username, or registration token)
        is already taken.
        """
        with self.engine.begin() as conn:
            return _insert_user(conn, user)

    def create_super_admin(self, user: User, role_id: int) -> int:
        """Insert the bootstrap administrator and claim the single super-admin slot.

        The claim row and the user are written in one transaction. If the claim
        already exists the whole transaction rolls back and IntegrityError
        propagates -- no orphan user is left behind.
        """
        user.roles = [role_id]
        with self.engine.begin() as conn:
            user_id = _insert_user(conn, user)
            conn.execute(_super_admin_claim.insert().values(id=1, user_id=user_id, created_at=_now_iso()))
        return user_id

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            return _row_to_user(conn, row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Emails are lowercased by the API models before they get here."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
            return _row_to_user(conn, row) if row is not None else None

    def get_by_registration_token(self, registration_token: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.registration_token == registration_token)).fetchone()
            return _row_to_user(conn, row) if row is not None else None

    def get_by_reset_token(self, token_hash: str) -> User | None:
        """Look up a user by the HMAC of a password-reset token. Expiry is the caller's check."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.reset_password_token == token_hash)).fetchone()
            return _row_to_user(conn, row) if row is not None else None

    def update_user(self, user_id: int, **fields) -> bool:
        """Update columns on an existing user.

        is_active must be passed as bool; this method converts to int for SQLite.
        Returns True if a row was updated, False if user_id was not found.
        """
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def consume_token(self, user_id: int, token_field: str, token_value: str, **fields) -> bool:
        """Apply fields only while token_field still holds token_value.

        The token check and the write are one UPDATE statement, so of several
        concurrent callers presenting the same one-time token exactly one gets
        True. Callers clear the token column in fields.
        """
        if token_field not in _ONE_TIME_TOKEN_FIELDS:
            raise ValueError(f"{token_field!r} is not a one-time token column")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        stmt = (
            _users.update()
            .where(_users.c.id == user_id)
            .where(_users.c[token_field] == token_value)
            .values(**fields)
        )
        with self.engine.begin() as conn:
            result = conn.execute(stmt)
        return result.rowcount == 1

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleStore:
    """Read access to role definitions, plus idempotent seeding of the built-ins."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ensure_default_roles(self) -> None:
        """Create any missing built-in role. Safe to call on every startup."""
        with self.engine.begin() as conn:
            existing = set(conn.execute(select(_roles.c.code)).scalars())
            for name, code, description in _DEFAULT_ROLES:
                if code not in existing:
                    conn.execute(_roles.insert().values(name=name, code=code, description=description))

    def get_by_code(self, code: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.code == code)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_super_admin(self) -> Role | None:
        return self.get_by_code(SUPER_ADMIN_CODE)


# ---------------------------------------------------------------------------
# Revocations
# ---------------------------------------------------------------------------


class RevocationStore:
    """Append-only set of revoked session tokens.

    revoke() is idempotent: the token is the primary key, and a duplicate
    insert is treated as "already revoked". Each call commits before it
    returns, so a later is_revoked() in the same process always sees it.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def revoke(self, token: str, expires_at: datetime | None = None) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _revoked_tokens.insert().values(
                        token=token,
                        revoked_at=_now_iso(),
                        expires_at=expires_at.isoformat() if expires_at is not None else None,
                    )
                )
        except IntegrityError:
            pass  # already revoked

    def is_revoked(self, token: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_revoked_tokens.c.token).where(_revoked_tokens.c.token == token)).fetchone()
        return row is not None

    def get(self, token: str) -> RevocationRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_revoked_tokens.select().where(_revoked_tokens.c.token == token)).fetchone()
        if row is None:
            return None
        return RevocationRecord(token=row.token, revoked_at=row.revoked_at, expires_at=row.expires_at)

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete records whose token has expired on its own. Returns rows removed."""
        cutoff = (now or datetime.now(timezone.utc)).isoformat()
        with self.engine.begin() as conn:
            result = conn.execute(
                _revoked_tokens.delete().where(
                    _revoked_tokens.c.expires_at.is_not(None) & (_revoked_tokens.c.expires_at < cutoff)
                )
            )
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _insert_user(conn: Connection, user: User) -> int:
    result = conn.execute(
        _users.insert().values(
            email=user.email,
            username=user.username,
            firstname=user.firstname,
            lastname=user.lastname,
            hashed_password=user.hashed_password,
            is_active=1 if user.is_active else 0,
            registration_token=user.registration_token,
            reset_password_token=user.reset_password_token,
            reset_password_expires=user.reset_password_expires,
            created_at=_now_iso(),
        )
    )
    user_id = result.inserted_primary_key[0]
    for role_id in user.roles:
        conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
    return user_id


def _row_to_user(conn: Connection, row) -> User:
    role_ids = conn.execute(
        select(_user_roles.c.role_id).where(_user_roles.c.user_id == row.id).order_by(_user_roles.c.role_id)
    ).scalars()
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        firstname=row.firstname,
        lastname=row.lastname,
        hashed_password=row.hashed_password,
        roles=list(role_ids),
        is_active=bool(row.is_active),
        registration_token=row.registration_token,
        reset_password_token=row.reset_password_token,
        reset_password_expires=row.reset_password_expires,
        created_at=row.created_at,
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name, code=row.code, description=row.description)
