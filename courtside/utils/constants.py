"""
Constants used across the event participation system.
"""

# Event form bounds
FIND_NUM_MIN = 1
FIND_NUM_MAX = 20
DURATION_HOURS_MIN = 1
DURATION_HOURS_MAX = 12
TOTAL_COST_MIN = 0

# Feedback grade bounds (inclusive)
GRADE_MIN = 0
GRADE_MAX = 100

# Notes / free text
EVENT_NOTES_MAX_LENGTH = 2000
USER_NAME_MAX_LENGTH = 100
