"""
collabxp Test Suite
===================

Test Organization
-----------------
- tests/unit/          : Fast unit tests (in-memory store, mocked bus and redis)
- tests/unit/domain/   : Pure domain model tests
- tests/integration/   : SQL store tests against a temporary aiosqlite database

Testing Philosophy
------------------
- Unit tests: fast, isolated, test business logic
- Integration tests: slower, test real database interactions
- Use pytest markers (unit, domain, integration) to run subsets
- Follow AAA pattern: Arrange, Act, Assert
"""
