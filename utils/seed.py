from models import db
from models.user import Role

DEFAULT_ROLES = ["STUDENT", "COUNSELLOR", "MODERATOR", "ADMIN"]


def seed_roles():
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    if missing:
        db.session.commit()


def get_role(name: str) -> Role:
    role = Role.query.filter_by(name=name).first()
    if role is None:
        role = Role(name=name)
        db.session.add(role)
        db.session.flush()
    return role


def grant_role(user, name: str) -> bool:
    role = get_role(name)
    if role in user.roles:
        return False
    user.roles.append(role)
    return True
