"""
Application constants shared across the workflow.
"""

# Actor recorded on records created by scheduled jobs
SYSTEM_USER = "SYSTEM"

# Case reference number format, e.g. X123456
CRN_PATTERN = r"^[A-Z][0-9]{6}$"

# Object storage key formats
SETUP_PHOTO_KEY = "setup-{offender_uuid}"
CHECKIN_SNAPSHOT_KEY = "checkin-{checkin_uuid}/{index}"
CHECKIN_VIDEO_KEY = "checkin-{checkin_uuid}/video"

# Domain events
DOMAIN_EVENT_PREFIX = "esupervision"
DOMAIN_EVENT_VERSION = 1

# Audit notes
NOTE_CREATED_BY_JOB = "Created by scheduled job"
NOTE_EXPIRED_BY_JOB = "Expired by scheduled job"
NOTE_REMINDED_BY_JOB = "Reminder sent by scheduled job"

# Upstream case-data batch lookups
MAX_CONTACT_BATCH_SIZE = 500

# Paging
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500
