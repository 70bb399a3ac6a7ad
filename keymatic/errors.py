# Script: errors.py
#
# Every failure carries the operation and the username it happened to, so the
# caller can log one meaningful line and move on (or stop).

class KeymaticError(RuntimeError):
    def __init__(self, message: str, operation: str = "", username: str | None = None):
        super().__init__(message)
        self.operation = operation
        self.username = username


# Container detection failed; nothing else may run.
class DetectionError(KeymaticError):
    pass


# Account database or roster unreadable.
class InventoryError(KeymaticError):
    pass


class AccountNotFound(KeymaticError):
    def __init__(self, username: str):
        super().__init__(f"no local account named {username}", "lookup", username)


class CommandError(KeymaticError):
    def __init__(self, program: str, args: list[str], returncode: int, stderr: str = ""):
        self.program = program
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr}" if stderr else ""
        super().__init__(f"{program} {' '.join(args)} exited {returncode}{detail}", "exec")


# Create / group / keys failure for one identity.
class LifecycleError(KeymaticError):
    def __init__(self, operation: str, username: str, cause: Exception):
        self.cause = cause
        super().__init__(f"{operation} failed for {username}: {cause}", operation, username)


# Aborts the remaining cleanup batch.
class DeletionError(KeymaticError):
    def __init__(self, username: str, cause: Exception):
        self.cause = cause
        super().__init__(f"delete failed for {username}: {cause}", "delete", username)
