"""Internal constants shared across the library."""

MOD_ID = "elevator"

# ------------------------------------------------------------------
# Channel names
# ------------------------------------------------------------------

MAIN_CHANNEL = f"module.{MOD_ID}"
"""Single logical channel carrying every current-level message."""

SET_CURRENT_LEVEL = "setCurrentLevel"
GET_CURRENT_LEVEL = "getCurrentLevel"
CURRENT_LEVEL_CHANGED = "currentLevelChanged"

LEGACY_CHANNELS: dict[str, str] = {
    SET_CURRENT_LEVEL: f"{MAIN_CHANNEL}.{SET_CURRENT_LEVEL}",
    GET_CURRENT_LEVEL: f"{MAIN_CHANNEL}.{GET_CURRENT_LEVEL}",
    CURRENT_LEVEL_CHANGED: f"{MAIN_CHANNEL}.{CURRENT_LEVEL_CHANGED}",
}
"""Per-kind channels kept for older clients. The kind is implied by the name."""

# ------------------------------------------------------------------
# Persisted world state keys
# ------------------------------------------------------------------

CURRENT_LEVEL_KEY = "currentLevelByElevatorId"
ELEVATOR_LINKS_KEY = "elevatorLinksById"

# ------------------------------------------------------------------
# Stop naming / presentation defaults
# ------------------------------------------------------------------

STOP_NAME_PREFIX = "ELV"
DEFAULT_ICON_SRC = "modules/elevator/images/interface.webp"
DEFAULT_ICON_SIZE = 48
MIN_ICON_SIZE = 24
DEFAULT_RETURN_LABEL = "Return"

APPROVAL_FLAG = "approval"
"""Key under the ``elevator`` flag namespace holding an embedded approval request."""

# ------------------------------------------------------------------
# i18n keys handed to ``Host.notify``
# ------------------------------------------------------------------

WARN_NO_ELEVATOR_ID = f"{MOD_ID}.warn.noElevatorId"
WARN_NO_DESTINATION = f"{MOD_ID}.warn.noDestination"
WARN_NO_TOKENS_IN_REGION = f"{MOD_ID}.warn.noTokensInRegion"
WARN_TELEPORT_UNAVAILABLE = f"{MOD_ID}.warn.teleportUnavailable"
WARN_NOTHING_APPROVABLE = f"{MOD_ID}.warn.nothingApprovable"
ERROR_INVALID_DESTINATION = f"{MOD_ID}.error.invalidDestination"
ERROR_NOT_AUTHORITY = f"{MOD_ID}.error.notAuthority"
INFO_WAIT_NEXT_ROUND = f"{MOD_ID}.info.waitNextRound"
INFO_SENT_GM_REQUEST = f"{MOD_ID}.info.sentGMRequest"
INFO_SENT_OWNER_REQUEST = f"{MOD_ID}.info.sentOwnerRequest"
INFO_CONFIG_SAVED = f"{MOD_ID}.info.configSaved"

APPROVAL_TITLE = "Elevator approval"
APPROVAL_PROMPT = "requests to move the following to another level."
APPROVAL_CONFIRMATION = "Your elevator request was approved."
