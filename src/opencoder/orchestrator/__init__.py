"""Plan -> execute -> evaluate -> commit loop driving the opencode CLI.

Everything that must survive a restart lives in flat files under
``.opencoder/``: the markdown plan is the authority for task progress and
``state.json`` only records the cycle and phase. Counters are recomputed
from the plan on every start, so a crash between "task marked done" and
"state saved" never re-runs or skips a task.
"""
