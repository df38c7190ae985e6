"""Voluptuous schemas for Haier IoT wire formats."""

import voluptuous as vol

from .models import ValueRangeType

_NUMBER = vol.All(vol.Any(int, float), vol.Coerce(int))
_NON_EMPTY_STR = vol.All(str, vol.Length(min=1))

ENVELOPE_SCHEMA = vol.Schema(
    {
        vol.Required("topic"): _NON_EMPTY_STR,
        vol.Optional("content", default=None): object,
    },
    extra=vol.ALLOW_EXTRA,
)

RESPONSE_SCHEMA = vol.Schema(
    {
        vol.Required("retCode"): str,
        vol.Optional("retInfo", default=""): vol.Any(None, str),
        vol.Optional("data", default=None): object,
    },
    extra=vol.ALLOW_EXTRA,
)

_TOKEN_INFO_FIELDS = {
    vol.Required("accountToken"): str,
    vol.Required("expiresIn"): _NUMBER,
    vol.Required("tokenType"): str,
    vol.Required("refreshToken"): str,
    vol.Required("uhomeAccessToken"): _NON_EMPTY_STR,
    vol.Required("uhomeUserId"): str,
    vol.Required("uocUserId"): str,
}

LOGIN_RESPONSE_DATA_SCHEMA = vol.Schema(
    {
        vol.Required("tokenInfo"): vol.Schema(
            _TOKEN_INFO_FIELDS, extra=vol.REMOVE_EXTRA
        ),
    },
    extra=vol.ALLOW_EXTRA,
)

TOKEN_INFO_SCHEMA = vol.Schema(
    {**_TOKEN_INFO_FIELDS, vol.Required("expiresAt"): _NUMBER},
    extra=vol.REMOVE_EXTRA,
)

FAMILY_INFO_SCHEMA = vol.Schema(
    {
        vol.Required("familyId"): vol.Coerce(str),
        vol.Required("familyName"): str,
    },
    extra=vol.ALLOW_EXTRA,
)

FAMILY_LIST_DATA_SCHEMA = vol.Schema(
    {
        vol.Optional("createfamilies", default=list): vol.Any(
            None, [FAMILY_INFO_SCHEMA]
        ),
        vol.Optional("joinfamilies", default=list): vol.Any(
            None, [FAMILY_INFO_SCHEMA]
        ),
    },
    extra=vol.ALLOW_EXTRA,
)

DEVICE_INFO_SCHEMA = vol.Schema(
    {
        vol.Required("deviceId"): _NON_EMPTY_STR,
        vol.Optional("deviceName", default=""): vol.Any(None, str),
        vol.Optional("deviceType"): vol.Any(None, str),
        vol.Optional("wifiType"): vol.Any(None, str),
        vol.Optional("familyId"): vol.Any(None, vol.Coerce(str)),
        vol.Optional("online"): vol.Any(None, bool),
    },
    extra=vol.ALLOW_EXTRA,
)

DEVICES_DATA_SCHEMA = vol.Schema(
    {vol.Optional("deviceinfos", default=list): vol.Any(None, [dict])},
    extra=vol.ALLOW_EXTRA,
)

DIGITAL_MODELS_DATA_SCHEMA = vol.Schema({str: vol.Any(None, str, dict)})

WSS_URL_DATA_SCHEMA = vol.Schema(
    {vol.Required("agAddr"): _NON_EMPTY_STR},
    extra=vol.ALLOW_EXTRA,
)

VALUE_RANGE_SCHEMA = vol.Schema(
    {
        vol.Required("type"): vol.In([t.value for t in ValueRangeType]),
        vol.Optional("dataStep"): vol.Any(None, dict),
        vol.Optional("dataList"): vol.Any(None, [dict]),
        vol.Optional("dataDate"): vol.Any(None, dict),
        vol.Optional("dataTime"): vol.Any(None, dict),
    },
    extra=vol.ALLOW_EXTRA,
)

ATTRIBUTE_SCHEMA = vol.Schema(
    {
        vol.Required("name"): _NON_EMPTY_STR,
        vol.Optional("desc", default=""): vol.Any(None, str),
        vol.Required("readable"): bool,
        vol.Required("writable"): bool,
        vol.Optional("invisible", default=False): bool,
        vol.Required("valueRange"): VALUE_RANGE_SCHEMA,
        vol.Optional("value"): vol.Any(None, str),
    },
    extra=vol.ALLOW_EXTRA,
)

# Attributes are validated one by one so a bad entry does not sink the model.
DIGITAL_MODEL_SCHEMA = vol.Schema(
    {
        vol.Optional("alarms", default=list): vol.Any(None, list),
        vol.Required("attributes"): list,
    },
    extra=vol.ALLOW_EXTRA,
)

GEN_MSG_DOWN_SCHEMA = vol.Schema(
    {
        vol.Optional("businType"): str,
        vol.Required("data"): _NON_EMPTY_STR,
    },
    extra=vol.ALLOW_EXTRA,
)

PUSH_PAYLOAD_SCHEMA = vol.Schema(
    {
        vol.Required("dev"): _NON_EMPTY_STR,
        vol.Required("args"): _NON_EMPTY_STR,
    },
    extra=vol.ALLOW_EXTRA,
)

COMMANDS_SCHEMA = vol.Schema(
    vol.All(
        [
            vol.All(
                {
                    _NON_EMPTY_STR: vol.Any(
                        str, vol.All(vol.Any(int, float), vol.Coerce(str))
                    )
                },
                vol.Length(min=1),
            )
        ],
        vol.Length(min=1),
    )
)

DEVICE_IDS_SCHEMA = vol.Schema([_NON_EMPTY_STR])
