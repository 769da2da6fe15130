"""
ygoresolve services.

Shared, process-wide state and orchestration: name index, manifest
invalidation, term cache, search limiter and the resolution pipeline.
Import from the submodules directly.
"""
