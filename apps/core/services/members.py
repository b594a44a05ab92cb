from ..models import MessMember


def get_member(user):
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return MessMember.objects.filter(user_id=user.pk).first()


def role_of(user):
    if user is not None and getattr(user, 'is_superuser', False):
        return 'admin'
    member = get_member(user)
    return member.role if member else None


def has_role(user, *roles):
    return role_of(user) in roles


def is_staff_member(user):
    return has_role(user, *MessMember.STAFF_ROLES)
