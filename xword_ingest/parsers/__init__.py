"""
Parsers sub-package for xword-ingest.

Contains format-specific parsers that decode raw puzzle files into a
format-faithful intermediate representation (IR) and convert that IR into
the canonical ``Puzzle``.

Design: Strategy Pattern
- base.py defines the BaseParser ABC plus the shared error guard.
- ipuz.py implements IpuzParser for JSON (.ipuz) documents.
- puz.py implements PuzParser for Across Lite binary (.puz) files.
- jpz.py implements JpzParser for Crossword Compiler XML (.jpz) documents.
- xd.py implements XdParser for line-oriented text (.xd) files.

Default try-order mirrors how reliably each format announces itself:
  ipuz -> puz -> jpz -> xd

The dispatcher (_dispatch.py) picks parsers by format name at runtime.
"""
