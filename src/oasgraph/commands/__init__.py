"""Built-in CLI sub-commands for oasgraph.

* :mod:`~oasgraph.commands.document` -- ``validate``, ``index``, ``walk``
  and ``refs``, each taking a document path or URL.
* :mod:`~oasgraph.commands.config` -- view and modify global settings.

Document commands are plain callbacks registered directly on the root app;
``config`` is a :class:`typer.Typer` sub-application.
"""
