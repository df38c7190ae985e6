"""Constants for Haier IoT integration.

This module contains all the constants used throughout the integration,
including API endpoints, protocol topics, timing parameters and
configuration keys.
"""

from pathlib import Path

DOMAIN = "haier_iot"

APP_ID = "MB-UZHSH-0001"
APP_KEY = "5dfca8714eb26e3a776e58a8273c8752"
PHONE_TYPE = "iPhone16,2"
LANGUAGE = "zh-CN"
TIMEZONE = "+8"

API_URL_LOGIN = "https://zj.haier.net/oauthserver/account/v1/login"
API_URL_GET_FAMILY_LIST = (
    "https://zj.haier.net/api-gw/wisdomfamily/family/v4/family/list"
)
API_URL_GET_DEVICES_BY_FAMILY_ID = (
    "https://zj.haier.net/api-gw/wisdomdevice/applent/device/v2/family/devices"
)
API_URL_GET_DEV_DIGITAL_MODEL = "https://uws.haier.net/shadow/v1/devdigitalmodels"
API_URL_BATCH_SEND_COMMAND = "https://uws.haier.net/stdudse/v1/sendbatchCmd/{device_id}"
API_URL_GET_WSS_URL = "https://uws.haier.net/gmsWS/wsag/assign"

RET_CODE_SUCCESS = "00000"

REQUEST_TIMEOUT = 10.0  # Seconds per REST request
CONNECT_TIMEOUT = 10.0  # Seconds to wait for the websocket to open
HEARTBEAT_INTERVAL = 60.0  # Seconds between heartbeat frames
RECONNECT_BASE_DELAY = 1.0  # Doubled on every reconnect attempt
MAX_RECONNECT_ATTEMPTS = 5
CACHE_FLUSH_DELAY = 1.0  # Debounce window for cache writes

DEFAULT_POLL_INTERVAL = 300  # Long, since the websocket pushes model updates
DEFAULT_STORAGE_DIR = Path.home() / ".cache" / "haier-iot"
STORAGE_SUBDIR = ".storage"  # Under the Home Assistant config directory

TOKEN_DIR = "token"
CLIENT_ID_FILE = "client-id"
DIGITAL_MODEL_DIR = "dev-digital-model"

TOPIC_HEARTBEAT = "HeartBeat"
TOPIC_HEARTBEAT_ACK = "HeartBeatAck"
TOPIC_BOUND_DEVS = "BoundDevs"
TOPIC_BATCH_CMD_REQ = "BatchCmdReq"
TOPIC_GEN_MSG_DOWN = "GenMsgDown"

BUSIN_TYPE_DIGITAL_MODEL = "DigitalModel"

ERROR_INVALID_AUTH = "invalid_auth"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_TIMEOUT = "timeout_error"
ERROR_API_ERROR = "api_error"
ERROR_UNKNOWN = "unknown_error"

CONF_USERNAME = "username"
CONF_PASSWORD = "password"
