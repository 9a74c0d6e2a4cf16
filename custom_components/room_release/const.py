"""Constants for the Room Release integration."""

DOMAIN = "room_release"

# Configuration keys (config entry data)
CONF_ACCESS_TOKEN = "access_token"
CONF_DEVICE_IDS = "device_ids"
CONF_GRAPH_TENANT_ID = "graph_tenant_id"
CONF_GRAPH_CLIENT_ID = "graph_client_id"
CONF_GRAPH_CLIENT_SECRET = "graph_client_secret"

# Detection options
CONF_DETECT_SOUND = "detect_sound"
CONF_DETECT_ULTRASOUND = "detect_ultrasound"
CONF_REQUIRE_ULTRASOUND = "require_ultrasound"
CONF_DETECT_ACTIVE_CALLS = "detect_active_calls"
CONF_DETECT_INTERACTION = "detect_interaction"
CONF_DETECT_PRESENTATION = "detect_presentation"
CONF_USE_ROOM_IN_USE = "use_room_in_use"
CONF_BUTTON_STOP_CHECKS = "button_stop_checks"
CONF_OCCUPIED_STOP_CHECKS = "occupied_stop_checks"

# Timer and threshold options
CONF_CONSIDERED_OCCUPIED = "considered_occupied"
CONF_EMPTY_BEFORE_RELEASE = "empty_before_release"
CONF_INITIAL_RELEASE_DELAY = "initial_release_delay"
CONF_SOUND_LEVEL = "sound_level"
CONF_IGNORE_LONGER_THAN = "ignore_longer_than"
CONF_PROMPT_DURATION = "prompt_duration"
CONF_PERIODIC_INTERVAL = "periodic_interval"

# Behaviour options
CONF_TEST_MODE = "test_mode"
CONF_PLAY_ANNOUNCEMENT = "play_announcement"
CONF_FEEDBACK_ID = "feedback_id"

# Notification options
CONF_NOTIFY_SERVICE = "notify_service"
CONF_WEBEX_NOTIFY = "webex_notify"
CONF_WEBEX_ROOM_ID = "webex_room_id"
CONF_WEBEX_BOT_TOKEN = "webex_bot_token"

# Ghost booking options
CONF_GHOST_ENABLED = "ghost_enabled"
CONF_GHOST_STRIKES = "ghost_strikes"
CONF_GHOST_END_BOOKING = "ghost_end_booking"
CONF_GHOST_RESET_DAILY = "ghost_reset_daily"
CONF_GHOST_RESET_WEEKLY = "ghost_reset_weekly"
CONF_GHOST_RESET_MONTHLY = "ghost_reset_monthly"
CONF_GHOST_RESET_YEARLY = "ghost_reset_yearly"
CONF_GHOST_LOOKAHEAD_DAYS = "ghost_lookahead_days"

# Defaults
DEFAULT_NAME = "Room Release"
DEFAULT_DETECT_SOUND = False
DEFAULT_DETECT_ULTRASOUND = False
DEFAULT_REQUIRE_ULTRASOUND = False
DEFAULT_DETECT_ACTIVE_CALLS = True
DEFAULT_DETECT_INTERACTION = True
DEFAULT_DETECT_PRESENTATION = True
DEFAULT_USE_ROOM_IN_USE = False
DEFAULT_BUTTON_STOP_CHECKS = False
DEFAULT_OCCUPIED_STOP_CHECKS = False
DEFAULT_CONSIDERED_OCCUPIED = 15  # minutes
DEFAULT_EMPTY_BEFORE_RELEASE = 5  # minutes
DEFAULT_INITIAL_RELEASE_DELAY = 10  # minutes
DEFAULT_SOUND_LEVEL = 50  # dB
DEFAULT_IGNORE_LONGER_THAN = 3  # hours
DEFAULT_PROMPT_DURATION = 60  # seconds
DEFAULT_PERIODIC_INTERVAL = 2  # minutes
DEFAULT_TEST_MODE = False
DEFAULT_PLAY_ANNOUNCEMENT = True
DEFAULT_FEEDBACK_ID = "alertResponse"
DEFAULT_WEBEX_NOTIFY = False
DEFAULT_GHOST_ENABLED = False
DEFAULT_GHOST_STRIKES = 3
DEFAULT_GHOST_END_BOOKING = False
DEFAULT_GHOST_RESET_DAILY = 2  # days per recurrence interval
DEFAULT_GHOST_RESET_WEEKLY = 8
DEFAULT_GHOST_RESET_MONTHLY = 32
DEFAULT_GHOST_RESET_YEARLY = 366
DEFAULT_GHOST_LOOKAHEAD_DAYS = 30

# Seconds added to the prompt duration before the final decision, to absorb
# delay in the telemetry/command channel
DECISION_BUFFER_SECONDS = 2

# Seconds added to the periodic metrics poll interval
POLL_JITTER_SECONDS = 1

# Upper bound (minutes) for the ghost reset timer armed at booking start
GHOST_RESET_MAX_MINUTES = 4

# The full prompt is reissued on this cadence while counting down
PROMPT_REISSUE_SECONDS = 5

MIN_SOFTWARE_VERSION = "11.0.0.0"

# Bus event carrying device telemetry: device_id, path, value
EVENT_TELEMETRY = f"{DOMAIN}_telemetry"

# Storage
STORAGE_VERSION = 1

# Prompt content
PROMPT_TITLE = "Unoccupied Room"
PROMPT_TEXT = "Please Check-In below to retain this Room Booking."
PROMPT_OPTION = "Check-In"
ALERT_TEXT = "Unoccupied Room Alert! It will be released in {seconds} seconds."
ALERT_HINT = "<br>Please use Touch Panel to retain booking."

# Notification defaults
DEFAULT_NOTIFY_TITLE = "Room Release · {name}"
DEFAULT_NOTIFICATION_TAG = "room_release_notification"

# Platforms
PLATFORMS = ["binary_sensor", "sensor"]
