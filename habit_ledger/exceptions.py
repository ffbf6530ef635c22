"""
Custom exceptions for the habit ledger application.
Provides specific exception types for better error handling and recovery.
"""


class HabitLedgerException(Exception):
    """Base exception for habit ledger application"""
    pass


class TaskNotFoundException(HabitLedgerException):
    """Raised when a task is not found"""
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task with ID {task_id} not found")


class StudentNotFoundException(HabitLedgerException):
    """Raised when a student is not found"""
    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student with ID {student_id} not found")


class PersistenceFailureException(HabitLedgerException):
    """Raised when a ledger batch could not be written to the database"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database {operation} failed: {details}")


class ValidationException(HabitLedgerException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")


class RewardNotFoundException(HabitLedgerException):
    """Raised when a badge or goal is not found"""
    def __init__(self, kind: str, reward_id: int):
        self.kind = kind
        self.reward_id = reward_id
        super().__init__(f"{kind.capitalize()} with ID {reward_id} not found")
