STATE_DIR_NAME = ".task_organizer"
CONFIG_FILE = "config.yaml"
TASKS_FILE = "tasks.yaml"
COLUMNS_FILE = "columns.yaml"
TASK_TAGS_FILE = "task_tags.yaml"
LOCK_FILE = ".lock"

DEFAULT_PROJECT_ID = "default"

DEFAULT_ORDER_STEP = 1.0
# Neighbor gap below which a scope is renumbered instead of bisected.
DEFAULT_ORDER_PRECISION = 1e-6
DEFAULT_AUTOSAVE_DELAY_SECONDS = 1.0

LOG_LEVEL_ENV_VAR = "TASK_ORGANIZER_LOG_LEVEL"

TASK_STATUS_TODO = "todo"
TASK_STATUS_IN_PROGRESS = "in_progress"
TASK_STATUS_REVIEW = "review"
TASK_STATUS_DONE = "done"
TASK_STATUS_BLOCKED = "blocked"

BUILT_IN_STATUSES = (
    TASK_STATUS_TODO,
    TASK_STATUS_IN_PROGRESS,
    TASK_STATUS_REVIEW,
    TASK_STATUS_DONE,
    TASK_STATUS_BLOCKED,
)

# Human labels written by older clients.
STATUS_ALIASES = {
    "To Do": TASK_STATUS_TODO,
    "To do": TASK_STATUS_TODO,
    "In Progress": TASK_STATUS_IN_PROGRESS,
    "Review": TASK_STATUS_REVIEW,
    "Done": TASK_STATUS_DONE,
    "Blocked": TASK_STATUS_BLOCKED,
}

DEFAULT_COLUMNS = (
    {"status_key": TASK_STATUS_TODO, "name": "To Do", "order": 0, "color": "#94a3b8"},
    {"status_key": TASK_STATUS_IN_PROGRESS, "name": "In Progress", "order": 1, "color": "#3b82f6"},
    {"status_key": TASK_STATUS_REVIEW, "name": "Review", "order": 2, "color": "#f59e0b"},
    {"status_key": TASK_STATUS_DONE, "name": "Done", "order": 3, "color": "#10b981"},
    {"status_key": TASK_STATUS_BLOCKED, "name": "Blocked", "order": 4, "color": "#ef4444"},
)
DEFAULT_CUSTOM_COLUMN_COLOR = "#6b7280"
