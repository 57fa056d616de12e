"""Notes permission registry.

Notes permissions are granted per entity type on a virtual resource
``{entity_type}:notes``, independent of the permissions that govern the
parent entity itself. This allows e.g. "citizens can read issues but only
staff can see notes".

Administrative bypass: always has all permissions (no grant lookup).
"""

from entity_notes.db.enums import NotesAction


NOTES_RESOURCE_SUFFIX = ":notes"

# Well-known role names
ROLE_USER = "user"
ROLE_EDITOR = "editor"
ROLE_ANONYMOUS = "anonymous"


# =============================================================================
# Default Role Grants
# =============================================================================

# Seeded when notes are first enabled for an entity type
DEFAULT_NOTES_GRANTS: dict[str, set[NotesAction]] = {
    ROLE_EDITOR: {NotesAction.READ, NotesAction.CREATE},
    ROLE_USER: {NotesAction.READ},
}


# =============================================================================
# Helper Functions
# =============================================================================

def notes_resource_key(entity_type: str) -> str:
    """Virtual resource name that notes grants are keyed on."""
    return f"{entity_type}{NOTES_RESOURCE_SUFFIX}"


def get_default_grants() -> list[tuple[str, NotesAction]]:
    """Flatten default grants into sorted (role, action) pairs."""
    return sorted(
        (role, action)
        for role, actions in DEFAULT_NOTES_GRANTS.items()
        for action in actions
    )
