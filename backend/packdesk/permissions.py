# Overview: Role catalogue and the minimal role set for every operation.

OWNER = "owner"
ADMIN = "admin"
PACKER = "packer"

# Most privileged first. Used to pick the effective role for projections.
ROLE_PRECEDENCE = (OWNER, ADMIN, PACKER)
ALL_ROLES = frozenset(ROLE_PRECEDENCE)

# Roles staff management may hand out. Ownership only comes from Tenant.owner_subject.
ASSIGNABLE_ROLES = frozenset({ADMIN, PACKER})


# Each entry: operation code -> roles allowed to perform it
OPERATION_ROLES = {
    # Products
    "VIEW_PRODUCTS": (OWNER, ADMIN, PACKER),
    "MANAGE_PRODUCTS": (OWNER,),
    "VIEW_LOW_STOCK": (OWNER, ADMIN),
    # Inventory ledger
    "ADJUST_STOCK": (OWNER,),
    "VIEW_MOVEMENTS": (OWNER,),
    # Orders
    "CREATE_ORDER": (OWNER, ADMIN),
    "CANCEL_ORDER": (OWNER, ADMIN),
    "VIEW_ORDERS": (OWNER, ADMIN, PACKER),
    "PACK_ORDER": (PACKER,),
    "UPDATE_SHIPPING": (OWNER, ADMIN, PACKER),
    "UPDATE_ORDER_STATUS": (OWNER, ADMIN),
    "ORDER_REPORTS": (OWNER, ADMIN),
    # Staff
    "VIEW_STAFF": (OWNER, ADMIN),
    "MANAGE_STAFF": (OWNER,),
}


def roles_for(operation: str) -> tuple[str, ...]:
    """Allowed roles for an operation code. Unknown codes allow nobody."""
    return OPERATION_ROLES.get(operation, ())


def normalize_roles(raw) -> list[str]:
    """
    Normalize a role claim into an ordered, de-duplicated list of known roles.

    Accepts a list/tuple of strings or a comma-separated string. Anything else
    (including unknown role names) is dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        candidates = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        candidates = raw
    else:
        return []

    roles: list[str] = []
    for value in candidates:
        if not isinstance(value, str):
            continue
        role = value.strip().lower()
        if role in ALL_ROLES and role not in roles:
            roles.append(role)
    return roles


def effective_role(roles) -> str | None:
    """Most privileged role in an already-resolved role set."""
    for role in ROLE_PRECEDENCE:
        if role in roles:
            return role
    return None
