JOURNAL_ENTRIES = "journalEntries"
TODO_TASKS = "todoTasks"
TOTAL_TASKS_COMPLETED = "totalTasksCompleted"
MILESTONE_STATES = "milestoneStates"
USER_PERSONA = "userPersona"
COMPANION_ID = "companionId"
LAST_MOOD_DATA = "lastMoodData"

CONVERSATION_HISTORY_PREFIX = "conversationHistory_"

APPLICATION_KEYS = (
    JOURNAL_ENTRIES,
    TODO_TASKS,
    TOTAL_TASKS_COMPLETED,
    MILESTONE_STATES,
    USER_PERSONA,
    COMPANION_ID,
    LAST_MOOD_DATA,
)


def conversation_history_key(companion_name: str) -> str:
    return f"{CONVERSATION_HISTORY_PREFIX}{companion_name}"


def is_application_key(key: str) -> bool:
    return key in APPLICATION_KEYS or key.startswith(CONVERSATION_HISTORY_PREFIX)
