# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for one part of the domain:
#
#   follow_service    - follow graph (directed user -> user edges)
#   tag_service       - tag catalog (lazy, deduplicated tag names)
#   article_service   - article store (authoring, ownership, tag links)
#   favorite_service  - favorite tracker (user <-> article)
#   query_service     - listings, feed and viewer-relative decoration
#   user_service      - user directory (lookup, registration, login)
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
