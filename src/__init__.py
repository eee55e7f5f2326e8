"""
Package marker for the Movies API source tree.
The HTTP layer in `src.api` sits on the persistence layer in `src.data`; shared helpers live in `src.common`.
"""
