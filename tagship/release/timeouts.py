from __future__ import annotations

# Local git reads (tag history)
GIT_TIMEOUT_SECONDS = 30.0

# Hosting platform API calls (gh release view/create)
GH_TIMEOUT_SECONDS = 60.0

# Registry uploads; cargo may rebuild the crate unless verification is skipped.
PACKAGE_PUBLISH_TIMEOUT_SECONDS = 30 * 60.0

# Container engine
DOCKER_LOGIN_TIMEOUT_SECONDS = 60.0
DOCKER_BUILD_TIMEOUT_SECONDS = 60 * 60.0
DOCKER_PUSH_TIMEOUT_SECONDS = 20 * 60.0
