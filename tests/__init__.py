"""
Arena Test Suite
================

Test Organization
-----------------
- tests/unit/          : Fast tests on in-memory SQLite with fake Redis
- tests/unit/domain/   : Pure domain logic (formulas, queue, match resolution)
- tests/integration/   : Integration tests with testcontainers (real PostgreSQL/Redis)

Testing Philosophy
------------------
- Unit tests exercise services through the real DatabaseService
- Integration tests run only with ARENA_RUN_INTEGRATION=1
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
