"""
Role-based access control for portfolios and the admin (Forge) app.

Portfolio roles are strictly ordered ``owner > admin > member > viewer``.
A membership's ``property_access`` is either ``None`` (the role's default
permissions on every property in the portfolio) or a map of
``{property_id: [permission, ...]}``; properties missing from the map are
inaccessible and listed permissions are capped by the role defaults.

The ``validate_*`` functions return ``(allowed, error, error_code)`` so the
routes can surface a stable code to the client.
"""

PORTFOLIO_ROLES = ('owner', 'admin', 'member', 'viewer')

ROLE_RANK = {
    'owner': 3,
    'admin': 2,
    'member': 1,
    'viewer': 0,
}

# Roles each role may assign, modify or remove
ROLE_HIERARCHY = {
    'owner': ('admin', 'member', 'viewer'),
    'admin': ('member', 'viewer'),
    'member': (),
    'viewer': (),
}

ROLE_LABELS = {
    'owner': 'Owner',
    'admin': 'Admin',
    'member': 'Member',
    'viewer': 'Viewer',
}

ROLE_DESCRIPTIONS = {
    'owner': 'Full control of the portfolio, including billing, deletion and ownership transfer',
    'admin': 'Manages properties and members below admin; cannot delete the portfolio',
    'member': 'Can view and edit properties and add new ones',
    'viewer': 'Read-only access to properties',
}

PROPERTY_PERMISSIONS = ('view', 'edit', 'manage', 'delete')

ROLE_DEFAULT_PERMISSIONS = {
    'owner': ('view', 'edit', 'manage', 'delete'),
    'admin': ('view', 'edit', 'manage', 'delete'),
    'member': ('view', 'edit'),
    'viewer': ('view',),
}

PORTFOLIO_ACTIONS = (
    'view_portfolio', 'edit_portfolio', 'delete_portfolio',
    'invite_members', 'remove_members', 'change_member_roles',
    'add_properties', 'view_audit_log', 'manage_billing'
)

PORTFOLIO_ROLE_ACTIONS = {
    'owner': PORTFOLIO_ACTIONS,
    'admin': (
        'view_portfolio', 'edit_portfolio', 'invite_members',
        'remove_members', 'add_properties', 'view_audit_log'
    ),
    'member': ('view_portfolio', 'add_properties'),
    'viewer': ('view_portfolio',),
}


# ---------------------------------------------------------------------------
# Role comparisons
# ---------------------------------------------------------------------------

# Codes that describe a malformed request rather than a refused one
INPUT_ERROR_CODES = ('INVALID_ROLE', 'INVALID_PROPERTY_ACCESS')


def denial_status(code):
    return 400 if code in INPUT_ERROR_CODES else 403


def is_valid_role(role):
    return isinstance(role, str) and role in ROLE_RANK


def get_role_rank(role):
    return ROLE_RANK[role] if is_valid_role(role) else -1


def is_role_higher_than(role, other):
    return get_role_rank(role) > get_role_rank(other)


def is_role_at_least(role, minimum):
    return get_role_rank(role) >= get_role_rank(minimum)


def can_manage_role(actor_role, target_role):
    return target_role in ROLE_HIERARCHY.get(actor_role, ())


def get_assignable_roles(actor_role):
    return list(ROLE_HIERARCHY.get(actor_role, ()))


def get_role_label(role):
    return ROLE_LABELS.get(role, role)


def get_role_description(role):
    return ROLE_DESCRIPTIONS.get(role, '')


# ---------------------------------------------------------------------------
# Portfolio actions
# ---------------------------------------------------------------------------

def can_perform_portfolio_action(role, action):
    return action in PORTFOLIO_ROLE_ACTIONS.get(role, ())


def get_allowed_portfolio_actions(role):
    return list(PORTFOLIO_ROLE_ACTIONS.get(role, ()))


# ---------------------------------------------------------------------------
# Property permissions
# ---------------------------------------------------------------------------

def get_property_permissions(role, property_access, property_id):
    """Effective permissions of a member on one property"""
    defaults = ROLE_DEFAULT_PERMISSIONS[role] if is_valid_role(role) else ()
    if property_access is None:
        return list(defaults)
    granted = property_access.get(str(property_id))
    if not granted:
        return []
    return [permission for permission in defaults if permission in granted]


def has_property_permission(role, property_access, property_id, permission):
    return permission in get_property_permissions(role, property_access, property_id)


def has_full_property_access(property_access):
    return property_access is None


def get_accessible_property_ids(property_access):
    """Property ids listed in the access map, or None for full access"""
    if property_access is None:
        return None
    return [property_id for property_id, granted in property_access.items() if granted]


def build_permission_check_result(role, property_access):
    """Everything the client needs to render a portfolio for this member"""
    return {
        'can_view_portfolio': can_perform_portfolio_action(role, 'view_portfolio'),
        'can_edit_portfolio': can_perform_portfolio_action(role, 'edit_portfolio'),
        'can_delete_portfolio': can_perform_portfolio_action(role, 'delete_portfolio'),
        'can_invite_members': can_perform_portfolio_action(role, 'invite_members'),
        'can_remove_members': can_perform_portfolio_action(role, 'remove_members'),
        'can_change_member_roles': can_perform_portfolio_action(role, 'change_member_roles'),
        'can_add_properties': can_perform_portfolio_action(role, 'add_properties'),
        'can_view_audit_log': can_perform_portfolio_action(role, 'view_audit_log'),
        'can_manage_billing': can_perform_portfolio_action(role, 'manage_billing'),
        'can_view': is_role_at_least(role, 'viewer'),
        'can_edit': is_role_at_least(role, 'member'),
        'can_admin': is_role_at_least(role, 'admin'),
        'assignable_roles': get_assignable_roles(role),
        'has_full_property_access': has_full_property_access(property_access),
        'accessible_property_ids': get_accessible_property_ids(property_access),
    }


def build_property_permission_check_result(role, property_access, property_id):
    permissions = get_property_permissions(role, property_access, property_id)
    return {
        'can_view': 'view' in permissions,
        'can_edit': 'edit' in permissions,
        'can_manage': 'manage' in permissions,
        'can_delete': 'delete' in permissions,
        'permissions': permissions,
    }


# ---------------------------------------------------------------------------
# Security validations
# ---------------------------------------------------------------------------

def validate_property_access_map(property_access):
    """Shape check: None, or {property_id: [known permissions]}"""
    if property_access is None:
        return True, None
    if not isinstance(property_access, dict):
        return False, 'property_access must be an object keyed by property id'
    for property_id, granted in property_access.items():
        if not isinstance(granted, list) or any(p not in PROPERTY_PERMISSIONS for p in granted):
            return False, f'Invalid permissions for property {property_id}'
    return True, None


def validate_no_self_promotion(actor_id, target_user_id):
    if str(actor_id) == str(target_user_id):
        return False, 'You cannot change your own role', 'SELF_PROMOTION_DENIED'
    return True, None, None


def validate_owner_protection(target_role, operation):
    if target_role == 'owner':
        if operation == 'remove':
            return False, 'Cannot remove the portfolio owner. Transfer ownership first.', 'OWNER_PROTECTION'
        return (False, "Cannot change owner's role. Use transfer-ownership to change ownership.",
                'OWNER_PROTECTION')
    return True, None, None


def validate_only_owner_can_change_roles(actor_role):
    if actor_role != 'owner':
        return False, 'Only the portfolio owner can change member roles', 'ONLY_OWNER_CAN_CHANGE_ROLES'
    return True, None, None


def validate_can_invite(actor_role):
    if not is_role_at_least(actor_role, 'admin'):
        return False, 'Only owners and admins can invite members', 'INSUFFICIENT_PRIVILEGES'
    return True, None, None


def validate_role_assignment(actor_role, new_role):
    if not is_valid_role(new_role):
        return False, f'Invalid role: {new_role}', 'INVALID_ROLE'
    if new_role == 'owner':
        return False, 'The owner role cannot be assigned. Use transfer-ownership instead.', 'ROLE_ESCALATION_DENIED'
    if not can_manage_role(actor_role, new_role):
        return False, f'A {actor_role} cannot assign the {new_role} role', 'ROLE_ESCALATION_DENIED'
    return True, None, None


def validate_property_access_within_role(role, property_access):
    valid, error = validate_property_access_map(property_access)
    if not valid:
        return False, error, 'INVALID_PROPERTY_ACCESS'
    if property_access is None:
        return True, None, None
    allowed = ROLE_DEFAULT_PERMISSIONS[role] if is_valid_role(role) else ()
    for property_id, granted in property_access.items():
        excess = [permission for permission in granted if permission not in allowed]
        if excess:
            return (False, f"Permissions {', '.join(excess)} exceed the {role} role on property {property_id}",
                    'PROPERTY_ACCESS_EXCEEDS_ROLE')
    return True, None, None


def validate_no_privilege_escalation(actor_role, target_current_role, target_new_role=None):
    """The actor must outrank the target both before and after the change"""
    if not is_role_higher_than(actor_role, target_current_role):
        return False, 'You can only manage members with a lower role than yours', 'PRIVILEGE_ESCALATION_DENIED'
    if target_new_role is not None and not is_role_higher_than(actor_role, target_new_role):
        return False, 'You cannot grant a role equal to or higher than your own', 'PRIVILEGE_ESCALATION_DENIED'
    return True, None, None


def _first_failure(*checks):
    for allowed, error, code in checks:
        if not allowed:
            return False, error, code
    return True, None, None


def validate_role_change(actor_id, actor_role, target_user_id, target_role, new_role, property_access=None):
    return _first_failure(
        validate_no_self_promotion(actor_id, target_user_id),
        validate_owner_protection(target_role, 'change_role'),
        validate_only_owner_can_change_roles(actor_role),
        validate_role_assignment(actor_role, new_role),
        validate_no_privilege_escalation(actor_role, target_role, new_role),
        validate_property_access_within_role(new_role, property_access),
    )


def validate_member_removal(actor_id, actor_role, target_user_id, target_role):
    if str(actor_id) == str(target_user_id):
        return False, 'Cannot remove yourself. Use the leave endpoint instead.', 'SELF_REMOVAL_DENIED'
    return _first_failure(
        validate_owner_protection(target_role, 'remove'),
        validate_no_privilege_escalation(actor_role, target_role),
    )


def validate_invitation(actor_role, invited_role, property_access=None):
    return _first_failure(
        validate_can_invite(actor_role),
        validate_role_assignment(actor_role, invited_role),
        validate_property_access_within_role(invited_role, property_access),
    )


def validate_property_access_update(actor_id, actor_role, target_user_id, target_role, property_access):
    if str(actor_id) == str(target_user_id):
        return False, 'You cannot change your own property access', 'SELF_PROMOTION_DENIED'
    return _first_failure(
        validate_owner_protection(target_role, 'change_access'),
        validate_can_invite(actor_role),
        validate_no_privilege_escalation(actor_role, target_role),
        validate_property_access_within_role(target_role, property_access),
    )


# ---------------------------------------------------------------------------
# Admin (Forge) roles
# ---------------------------------------------------------------------------

ADMIN_ROLES = ('super_admin', 'admin', 'developer', 'viewer')

ADMIN_FEATURES = (
    'forge:board', 'forge:board:read',
    'forge:tickets', 'forge:tickets:read',
    'forge:agents',
    'forge:budget', 'forge:budget:read',
    'forge:registry',
    'forge:deployments',
    'admin:users', 'admin:settings', 'admin:billing', 'admin:analytics', 'admin:audit',
)

ADMIN_ROLE_FEATURES = {
    'super_admin': ('*',),
    'admin': ('admin:users', 'admin:settings', 'admin:billing', 'admin:analytics', 'admin:audit'),
    'developer': (
        'forge:board', 'forge:tickets', 'forge:agents',
        'forge:budget', 'forge:registry', 'forge:deployments'
    ),
    'viewer': ('forge:board:read', 'forge:tickets:read', 'forge:budget:read', 'forge:deployments'),
}


def parse_admin_roles(value):
    """Accept a list or a comma separated string; unknown roles are dropped"""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    return [role.strip() for role in value if role and role.strip() in ADMIN_ROLES]


def has_admin_role(roles, role):
    return role in parse_admin_roles(roles)


def has_feature_access(roles, feature):
    """Write access to a feature implies its ``:read`` variant"""
    granted = set()
    for role in parse_admin_roles(roles):
        granted.update(ADMIN_ROLE_FEATURES.get(role, ()))
    if '*' in granted or feature in granted:
        return True
    if feature.endswith(':read'):
        return feature[:-len(':read')] in granted
    return False


def can_access_forge(roles):
    return any(has_feature_access(roles, f'{feature}:read') for feature in ('forge:board', 'forge:tickets'))
