"""contextkit: hierarchical in-memory context store with merge/sync and remote-root bindings.

Layout:
    contextkit/
    ├── validation.py      # Shared throw/log/return-False validation contract
    ├── paths.py           # Dotted-path get/set/unset over host object graphs
    ├── config.py          # contextkit.toml + env loading, logging setup
    ├── store/             # ContextItem, ContextContainer, Context
    ├── sync/              # Comparison, merge strategies, sync dispatch
    └── remote/            # Root map, RootManager, remote operator/eraser
"""
