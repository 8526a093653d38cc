"""File-based JSON storage.

Data layout:
  data/
    sessions/
      <slug>.json        Decision history, combat state and location for one session
    config.json          App settings (decision tuning, AI connection)

Slug rules: name → Unicode normalize → strip non-ASCII → lowercase →
replace non-alnum runs with hyphen → strip leading/trailing hyphens.

Config: get_config() returns defaults merged with stored values.
update_config() merges each section key-by-key; unknown keys are ignored.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    data_dir,
    init_storage,
    sessions_dir,
    slugify,
)

from .sessions import (  # noqa: F401
    SESSION_VERSION,
    SessionData,
    load_session,
    save_session,
    session_exists,
)

from .config import (  # noqa: F401
    ai_client_config,
    decision_config,
    get_config,
    update_config,
)
