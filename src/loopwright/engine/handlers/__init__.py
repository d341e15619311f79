"""Step handlers, one module per step family.

Each module exposes ``HANDLERS``: a mapping from step dataclass to an async
handler ``(step, io) -> StepResult``. The dispatcher merges them.
"""
