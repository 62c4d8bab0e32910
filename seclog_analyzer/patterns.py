"""
Regex patterns and field vocabularies for key=value security log parsing.
"""

import re

# =============================================================================
# TOKENIZER PATTERNS
# =============================================================================

# Split point: whitespace followed by a bare-word name and "=".
# Spaces inside quoted values (srccountry="United States") are not split points.
TOKEN_SPLIT_PATTERN = re.compile(r'\s+(?=[A-Za-z_][\w.\-]*=)')

# A single name=value token. The value may be empty.
FIELD_PATTERN = re.compile(r'^([A-Za-z_][\w.\-]*)=(.*)$', re.DOTALL)

# Syslog priority prefix: <189>date=2024-01-01 ...
SYSLOG_PRIORITY_PATTERN = re.compile(r'^<\d{1,3}>')

# Epoch values in eventtime/timestamp fields (seconds to nanoseconds)
EPOCH_PATTERN = re.compile(r'^\d{10,19}$')

# =============================================================================
# VENDOR FIELD ALIASES
# =============================================================================
# The first alias present with a non-empty value wins.

REMOTE_IP_FIELDS = ('remip', 'srcip', 'src_ip', 'remote_ip')
DEST_PORT_FIELDS = ('dstport', 'dst_port', 'destport')
SRC_COUNTRY_FIELDS = ('srccountry', 'src_country')
STATUS_FIELDS = ('status',)
RESULT_FIELDS = ('result',)
ACTION_FIELDS = ('action',)
DISPOSITION_FIELDS = ('disposition',)

# date=2024-01-04 time=21:06:38 (FortiGate style)
DATE_FIELD = 'date'
TIME_FIELD = 'time'
TIMESTAMP_FIELDS = ('timestamp', 'eventtime', 'logtime', 'devtime')

RECOGNIZED_FIELDS = frozenset(
    REMOTE_IP_FIELDS
    + DEST_PORT_FIELDS
    + SRC_COUNTRY_FIELDS
    + STATUS_FIELDS
    + RESULT_FIELDS
    + ACTION_FIELDS
    + DISPOSITION_FIELDS
    + (DATE_FIELD, TIME_FIELD)
    + TIMESTAMP_FIELDS
)

# =============================================================================
# CLASSIFICATION
# =============================================================================

# Record attribute -> value marking a failed connection (compared case-insensitively)
FAILURE_INDICATORS = {
    'status': 'failure',
    'result': 'error',
    'action': 'deny',
    'disposition': 'blocked',
}

DEFAULT_TRUSTED_COUNTRIES = ('United States', 'Reserved')

# Risk tiers
RISK_HIGH = 'High'
RISK_MEDIUM = 'Medium'
RISK_LOW = 'Low'
HIGH_RISK_MULTIPLIER = 2

# Timestamp formats tried after ISO-8601
TIMESTAMP_FORMATS = (
    '%Y-%m-%d %H:%M:%S',
    '%Y/%m/%d %H:%M:%S',
    '%d/%b/%Y:%H:%M:%S',
    '%b %d %Y %H:%M:%S',
)
