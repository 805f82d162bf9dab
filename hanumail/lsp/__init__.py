"""
Language server for email messages.

This package provides:
- Content-Length framing with size limits
- A pygls protocol subclass enforcing the lifecycle, with cooperative cancellation
- Diagnostics, completion, hover, Message-ID navigation and reflow

Import the server from `hanumail.lsp.server`; this package does not import it
eagerly because `hanumail.config` and `hanumail.documents` depend on
`hanumail.lsp` submodules.
"""
