"""Stage-level errors."""


class StageError(RuntimeError):
    """A whole stage run could not proceed (e.g. its single batch call failed).

    Nothing from the failed run is committed; re-running is safe because the
    candidate queries only select unfinished work.
    """

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message
