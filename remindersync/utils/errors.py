"""Error handling utilities."""


class ReminderSyncError(Exception):
    """Base exception for the reminder sync engine."""
    pass


class TaskValidationError(ReminderSyncError):
    """User input rejected before any mutation was applied."""
    pass


class TaskNotFoundError(ReminderSyncError):
    """Record is not present in the local cache."""
    pass


class SupabaseError(ReminderSyncError):
    """Supabase operation error."""
    pass


class RecurrenceError(ReminderSyncError):
    """Next occurrence requested for a non-repeating frequency."""
    pass


class AssistantError(ReminderSyncError):
    """Text-generation assistant error."""
    pass


class CacheStorageError(ReminderSyncError):
    """On-device snapshot could not be read or written."""
    pass
