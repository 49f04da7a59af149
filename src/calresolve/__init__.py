"""calresolve: multi-calendar resolution, conflict detection and disambiguation.

The engine turns a structured calendar intent (create / update / delete) into
concrete operations against one or more calendars:

- ``engine.aggregator``: concurrent per-calendar fetch and time-ordered merge
- ``engine.conflicts``: half-open interval overlap checks for proposed events
- ``engine.slots``: alternative time-slot suggestions when a conflict exists
- ``engine.candidates``: singular/plural disambiguation of existing events
- ``engine.executor``: sequential, failure-isolated operation execution
- ``engine.service``: the single per-request entry point tying them together
"""

from __future__ import annotations

__version__ = "0.1.0"
