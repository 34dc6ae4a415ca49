"""Gorgon static site builder.

Gorgon turns a tree of content documents with YAML front matter, plus Jinja2
layouts and partials, into a tree of static HTML files. It records which
inputs every output file was built from, so later builds only re-render what
a change actually affects.

The main entry point is the CLI module, which provides commands for building
the site, serving it with live reload, and cleaning previous output.

Pipeline, leaf first:
- store: discovers documents, layouts, partials, data and static files.
- frontmatter: splits documents into metadata and body.
- graph: builds the immutable content graph (entities, collections, links).
- layouts / templates: resolve layout chains and render entities.
- dependencies: records per-artifact inputs and answers "what is affected".
- build: orchestrates full and incremental builds.
- server: watches sources and serves the output with live reload.
"""

__all__ = ["__version__"]
__version__ = "0.2.0"
