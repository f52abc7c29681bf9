"""Release bounded context.

- tags: which version is being released (Tag Resolver)
- metadata: image tags and provenance labels (Metadata Deriver)
- package / notes / image: publishers driving external tools
- orchestrator: runs the package and image pipelines side by side
"""

from __future__ import annotations
