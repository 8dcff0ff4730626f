"""Driver-location correlation engine.

Infers which vehicle auction yards independent truck drivers work from,
using free-text SMS conversations and a periodically synced load registry.
"""

__version__ = "0.1.0"
