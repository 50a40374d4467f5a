# Every fatal error carries its own exit status so calling automation can tell failure classes apart.

class PackageError(Exception):
    exit_status = 1

class ConfigError(PackageError):
    exit_status = 3

class ConflictingFlagsError(PackageError):
    exit_status = 4

class InvalidFieldError(ConflictingFlagsError):
    pass

class DirtyWorkingCopyError(PackageError):
    exit_status = 5

class VcsCommandError(PackageError):
    exit_status = 6
    
    def __init__(self, command, returncode = None, output = None):
        self.command = command
        self.returncode = returncode
        self.output = output
        
        message = f"`{' '.join(command)}` failed"
        if returncode is not None:
            message += f" with exit code {returncode}"
        if output:
            message += f": {output.strip()}"
        super().__init__(message)

class BuildToolFailureError(PackageError):
    exit_status = 7
    
    def __init__(self, variant: str, returncode = None, output = None):
        self.variant = variant
        self.returncode = returncode
        self.output = output

        message = f"Build tool failed for variant {variant}"
        if returncode is not None:
            message += f" with exit code {returncode}"
        if output:
            message += f": {output.strip()}"
        super().__init__(message)

class EngineNotFoundError(PackageError):
    exit_status = 8

class ArchiveError(PackageError):
    exit_status = 9

class UnknownVariantWarning(UserWarning):
    pass
