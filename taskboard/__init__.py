# Taskboard: kanban boards with optimistic ordering, plus a snippet manager
#
# Components:
#   schema.py    - Data model (Project, Column, Task, ChecklistItem, Label, Snippet)
#   ordering.py  - Order index algorithms shared by server and client
#   store.py     - SQLite persistence layer, one transaction per write
#   snippets.py  - Snippet CRUD, filtering, search
#   server.py    - Flask JSON API + taskboard-server entry point
#   config.py    - YAML / environment configuration
#   api.py       - requests-based API client returning Result values
#   state.py     - Client board state (snapshot holder)
#   mutations.py - Predicted snapshots for optimistic updates
#   service.py   - Optimistic mutator, reconciler, CRUD with reload
#   errors.py    - Error taxonomy and Result
