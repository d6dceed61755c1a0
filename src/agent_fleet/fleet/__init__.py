"""Fleet orchestration for a fixed roster of long-running agents.

Agents run in their own containers (or as detached local processes) and never
talk to the orchestrator directly.  All coordination goes through a shared
directory tree, the communication channel: agents write their status files,
the orchestrator writes prompts and reads status on a fixed tick.

Recovery (restart / restore / rebuild) is a separate, single-agent operation
that only shares the channel, workspace and snapshot conventions with a run.
"""
