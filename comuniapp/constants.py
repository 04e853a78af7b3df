SUPER_ADMIN_ROLE = "SUPER_ADMIN"
COMMUNITY_ADMIN_ROLE = "COMMUNITY_ADMIN"

_RESIDENT_PERMISSIONS = [
    "view_own_unit",
    "view_own_expenses",
    "view_community_expenses",
    "manage_own_profile",
    "create_incidents",
    "view_announcements",
    "manage_own_visitors",
]

# (name, description, ordered permission tags)
DEFAULT_ROLES = [
    (
        SUPER_ADMIN_ROLE,
        "System administrator with full access",
        [
            "manage_all_organizations",
            "manage_all_users",
            "view_system_metrics",
            "manage_organization_users",
            "manage_community",
            "manage_community_users",
            "manage_community_units",
            "manage_community_expenses",
            "view_community_reports",
            "manage_visitors",
            "manage_parcels",
            "manage_reservations",
            "view_community_announcements",
            *_RESIDENT_PERMISSIONS,
        ],
    ),
    (
        COMMUNITY_ADMIN_ROLE,
        "Administrator of one or more communities",
        [
            "manage_organization_users",
            "manage_community",
            "manage_community_users",
            "manage_community_units",
            "manage_community_expenses",
            "view_community_reports",
            "manage_visitors",
            "manage_parcels",
            "manage_reservations",
            "view_community_announcements",
            *_RESIDENT_PERMISSIONS,
        ],
    ),
    (
        "CONCIERGE",
        "Community concierge",
        [
            "manage_visitors",
            "manage_parcels",
            "manage_reservations",
            "view_community_announcements",
            "manage_own_profile",
            "view_announcements",
        ],
    ),
    ("OWNER", "Unit owner", list(_RESIDENT_PERMISSIONS)),
    ("TENANT", "Unit tenant", list(_RESIDENT_PERMISSIONS)),
    ("RESIDENT", "Unit resident", list(_RESIDENT_PERMISSIONS)),
]

MONEY_QUANTUM = "0.01"
DEFAULT_UNIT_COEFFICIENT = "1"

DECLARATION_KIND_LABELS = {
    "EXPENSE": "Common expenses",
    "INCOME": "Common income",
}
