"""Test suite for iconforge.

Test Structure:
- unit/: Unit tests, one directory per core package
  - generation/: Coordinator fan-out, generate-more, prompts, seeds, sanitizer
  - providers/: OpenAI and fal.ai adapters against mocked transports
  - imaging/: Grid decomposition, frame removal, centering
  - ledger/, progress/, storage/, config/, logging/, cli/
- conftest.py: Shared fixtures (scriptable FakeProvider, fixture grids, ledger)
"""
