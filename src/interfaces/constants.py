"""
Constants shared by the Solis agility components.
Includes slot geometry, store roots and the SolisCloud command identifiers.
"""

# half hour slot geometry (milliseconds)
SLOT_MS = 1800000
DAY_MS = 86400000
SLOTS_PER_DAY = 47

# sentinel used when no tariff price is stored for a slot
PRICE_NOT_AVAILABLE = "not available"

# roots of the sub-trees inside the shared persistent store
STORE_ROOT_SOLIS = "solis"
STORE_ROOT_CHARGE_HISTORY = "agilityChargeHistory"
STORE_ROOT_PRICES = "octopusAgile.byTime"

# SolisCloud API
SOLIS_DEFAULT_ENDPOINT = "https://www.soliscloud.com:13333"
SOLIS_CONTENT_TYPE = "application/json;charset=UTF-8"
SOLIS_SIGN_CONTENT_TYPE = "application/json"

# firmware dialects
FIRMWARE_PRE_4B00 = "pre-4B00"
FIRMWARE_POST_4B00 = "post-4B00"
FIRMWARE_UNKNOWN = "Unknown"

# control command identifiers
CID_SET_TIME = 56
CID_CHARGE_DISCHARGE_SETTINGS = 4643
CID_POST_4B00_CHARGE_CURRENT = 5948
CID_POST_4B00_CHARGE_SOC = 5928
CID_POST_4B00_CHARGE_TIME = 5946
CID_POST_4B00_DISCHARGE_CURRENT = 5967
CID_POST_4B00_DISCHARGE_SOC = 5965
CID_POST_4B00_DISCHARGE_TIME = 5964

EMPTY_TIME_WINDOW = "00:00-00:00"
