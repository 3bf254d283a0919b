"""Who may do what to a match or a club."""
import logging

from padelclub.errors import NotAuthorized

logger = logging.getLogger(__name__)

ROLE_OWNER = 'owner'
ROLE_PARTICIPANT = 'participant'
ROLE_CLUB_STAFF = 'club_staff'
ROLE_SITE_ADMIN = 'site_admin'

CLUB_ROLES = ('admin', 'staff')

# Actions on a match and the roles allowed to perform them.
MATCH_PERMISSIONS = {
    'edit': {ROLE_OWNER, ROLE_CLUB_STAFF, ROLE_SITE_ADMIN},
    'submit': {ROLE_OWNER, ROLE_CLUB_STAFF, ROLE_SITE_ADMIN},
    'confirm': {ROLE_OWNER, ROLE_CLUB_STAFF, ROLE_SITE_ADMIN},
    'cancel': {ROLE_OWNER, ROLE_SITE_ADMIN},
    'visibility': {ROLE_OWNER},
}


def match_roles(store, match, user_id):
    """Every role ``user_id`` holds on ``match``."""
    roles = set()
    if user_id is None:
        return roles
    if match.owner_id == user_id:
        roles.add(ROLE_OWNER)
    if match.team_of(user_id) is not None:
        roles.add(ROLE_PARTICIPANT)
    if match.club_id is not None and store.club_role(match.club_id, user_id) in CLUB_ROLES:
        roles.add(ROLE_CLUB_STAFF)
    if store.is_site_admin(user_id):
        roles.add(ROLE_SITE_ADMIN)
    return roles


def require_match_permission(store, match, user_id, action):
    roles = match_roles(store, match, user_id)
    if roles & MATCH_PERMISSIONS[action]:
        return roles
    logger.warning(
        'Denied %s on match %s for user %s (roles: %s)',
        action, match.id, user_id, ', '.join(sorted(roles)) or 'none',
    )
    raise NotAuthorized(f'You are not allowed to {action} this match')


def require_club_role(store, club_id, user_id, roles=CLUB_ROLES):
    """Return the member role, or 'site_admin'; raise NotAuthorized otherwise."""
    if store.is_site_admin(user_id):
        return ROLE_SITE_ADMIN
    role = store.club_role(club_id, user_id)
    if role in roles:
        return role
    logger.warning('Denied club %s access for user %s (role: %s)', club_id, user_id, role)
    raise NotAuthorized('Club staff access required')
