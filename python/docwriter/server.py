from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from docwriter.config import WriterConfig
from docwriter.docx.replacer import TextReplacer
from docwriter.ingest import extract_text_from_source
from docwriter.log import configure_logging
from docwriter.models import MarkdownAppenderRule, TocInsertionRule, TocUpdateRule
from docwriter.utils.docx import normalize_docx
from docwriter.writer import RuleBasedDocxWriter, load_document, save_document

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio.
# CRITICAL: All logs must go to stderr. Any print to stdout will break the JSON-RPC protocol.
configure_logging(json_output=True)

mcp = FastMCP("docwriter DOCX Templating Service")


def _require_file(path: str) -> Path:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return p


def _default_output(path: Path) -> str:
    if path.stem.endswith("_written"):
        return str(path)
    return str(path.parent / f"{path.stem}_written{path.suffix}")


@mcp.tool()
def read_docx(file_path: str) -> str:
    """
    Reads a DOCX file and returns its text content.
    Headings are prefixed with '#', table cells are separated by ' | '.

    Args:
        file_path: Absolute path to the DOCX file.
    """
    try:
        return extract_text_from_source(_require_file(file_path))
    except Exception as e:
        return f"Error reading file: {str(e)}"


@mcp.tool()
def apply_rules(
    template_path: str,
    rules: List[Dict[str, Any]],
    output_path: Optional[str] = None,
) -> str:
    """
    Applies templating rules to a DOCX file in one pass.

    Each rule is an object with a "kind":
    - text_replacement: {"text_to_replace": "doc.id", "value": "DOC-1"} replaces a text element
      that reads exactly $(doc.id).
    - regex_replacement: {"pattern": "\\$\\{(\\w+)\\}", "value": "<\\1>"} rewrites text elements
      that fully match the pattern. The value is a Python re template (escape backslashes),
      or plain text with "literal": true.
    - markdown_append: {"value": "# Title"} appends markdown at the end.
    - markdown_insertion: {"value": "...", "placeholder": "INSERT HERE"} replaces a paragraph.
    - toc_insertion: {"placeholder": "TOC"} inserts a table of contents.
    - toc_update: {} refreshes an existing table of contents.

    Args:
        template_path: Absolute path to the source DOCX.
        rules: The rules, applied in order to every element of the document.
        output_path: Optional. Defaults to <template>_written.docx next to the source.
    """
    try:
        source = _require_file(template_path)
        config = WriterConfig.from_data(rules)

        output_path = output_path or _default_output(source)
        RuleBasedDocxWriter(passes=config.passes).write(output_path, source=source)

        return f"Applied {len(config.rules)} rules. Saved to: {output_path}"
    except Exception as e:
        return f"Error applying rules: {str(e)}"


@mcp.tool()
def replace_text(
    docx_path: str,
    text_to_replace: str,
    replacement: str,
    output_path: Optional[str] = None,
    include_headers_footers: bool = True,
) -> str:
    """
    Replaces all occurrences of a text, also when Word split it across several runs.

    Args:
        docx_path: Absolute path to the DOCX file.
        text_to_replace: Literal text to search for. Cannot be empty.
        replacement: Literal replacement text.
        output_path: Optional. Defaults to <docx>_written.docx next to the source.
        include_headers_footers: If True (default), also replaces in headers and footers.
    """
    try:
        source = _require_file(docx_path)
        doc = load_document(source)
        normalize_docx(doc)

        rewritten = TextReplacer().replace_in_document(
            doc, text_to_replace, replacement, include_headers_footers=include_headers_footers
        )

        output_path = output_path or _default_output(source)
        save_document(doc, output_path)
        return f"Rewrote {rewritten} text runs. Saved to: {output_path}"
    except Exception as e:
        return f"Error replacing text: {str(e)}"


@mcp.tool()
def render_markdown(
    markdown_text: str,
    output_path: str,
    template_path: Optional[str] = None,
    include_toc: bool = False,
) -> str:
    """
    Renders Markdown into a DOCX file.

    Args:
        markdown_text: The Markdown content (headings, lists, tables, emphasis, code).
        output_path: Absolute path of the DOCX to write.
        template_path: Optional DOCX to append to. Defaults to an empty document.
        include_toc: If True, a table of contents is placed before the content.
    """
    try:
        source = _require_file(template_path) if template_path else None

        if include_toc:
            passes = [
                [TocInsertionRule(), MarkdownAppenderRule(value=markdown_text)],
                [TocUpdateRule()],
            ]
        else:
            passes = [[MarkdownAppenderRule(value=markdown_text)]]

        RuleBasedDocxWriter(passes=passes).write(output_path, source=source)
        return f"Saved to: {output_path}"
    except Exception as e:
        return f"Error rendering markdown: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
