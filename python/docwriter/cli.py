import argparse
import sys
from pathlib import Path

from docwriter import __version__
from docwriter.config import load_config
from docwriter.docx.replacer import TextReplacer
from docwriter.errors import DocWriterError
from docwriter.ingest import extract_text_from_source
from docwriter.log import configure_logging
from docwriter.models import MarkdownAppenderRule, TocInsertionRule, TocUpdateRule
from docwriter.utils.docx import normalize_docx
from docwriter.writer import RuleBasedDocxWriter, load_document, save_document


def _default_output(input_path: Path) -> Path:
    if input_path.stem.endswith("_written"):
        return input_path
    return input_path.with_name(f"{input_path.stem}_written.docx")


def _require_file(path: Path):
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)


def handle_apply(args):
    _require_file(args.template)
    _require_file(args.rules)

    config = load_config(args.rules)
    print(f"Applying {len(config.rules)} rules in {len(config.passes)} passes...", file=sys.stderr)

    output_path = args.output or _default_output(args.template)
    writer = RuleBasedDocxWriter(passes=config.passes)
    writer.write(output_path, source=args.template)

    print(f"✅ Saved to {output_path}", file=sys.stderr)


def handle_replace(args):
    _require_file(args.input)

    doc = load_document(args.input)
    if args.normalize:
        normalize_docx(doc)

    rewritten = TextReplacer().replace_in_document(
        doc, args.needle, args.replacement, include_headers_footers=args.headers_footers
    )

    output_path = args.output or _default_output(args.input)
    save_document(doc, output_path)

    print(f"✅ Saved to {output_path}", file=sys.stderr)
    print(f"Stats: {rewritten} text runs rewritten.", file=sys.stderr)


def handle_markdown(args):
    """Handler for the 'markdown' subcommand."""
    _require_file(args.input)
    if args.template:
        _require_file(args.template)

    with open(args.input, "r", encoding="utf-8") as f:
        markdown_text = f.read()

    # The ToC is refreshed in a second pass, once all headings exist
    if args.toc:
        passes = [
            [TocInsertionRule(), MarkdownAppenderRule(value=markdown_text)],
            [TocUpdateRule()],
        ]
    else:
        passes = [[MarkdownAppenderRule(value=markdown_text)]]

    output_path = args.output or args.input.with_suffix(".docx")
    RuleBasedDocxWriter(passes=passes).write(output_path, source=args.template)

    print(f"✅ Saved to {output_path}", file=sys.stderr)


def handle_extract(args):
    _require_file(args.input)
    text = extract_text_from_source(args.input)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"Extracted text to {args.output}", file=sys.stderr)
    else:
        print(text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docwriter", description="docwriter: rule-based DOCX templating")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_apply = subparsers.add_parser("apply", help="Apply a JSON rule file to a DOCX template")
    p_apply.add_argument("template", type=Path, help="Template DOCX")
    p_apply.add_argument("rules", type=Path, help="JSON rule file (list of rules, {'rules': ...} or {'passes': ...})")
    p_apply.add_argument("-o", "--output", type=Path, help="Output DOCX path (default: <template>_written.docx)")
    p_apply.set_defaults(func=handle_apply)

    p_replace = subparsers.add_parser("replace", help="Replace text, including text split across runs")
    p_replace.add_argument("input", type=Path, help="Input DOCX")
    p_replace.add_argument("needle", help="Text to replace")
    p_replace.add_argument("replacement", help="Replacement text")
    p_replace.add_argument("-o", "--output", type=Path, help="Output DOCX path (default: <input>_written.docx)")
    p_replace.add_argument(
        "--normalize",
        action="store_true",
        help="Merge identically formatted runs first, so text split by editing history is found",
    )
    p_replace.add_argument("--headers-footers", action="store_true", help="Also replace in headers and footers")
    p_replace.set_defaults(func=handle_replace)

    p_markdown = subparsers.add_parser("markdown", help="Render a Markdown file into a DOCX")
    p_markdown.add_argument("input", type=Path, help="Input Markdown file")
    p_markdown.add_argument("-o", "--output", type=Path, help="Output DOCX path (default: <input>.docx)")
    p_markdown.add_argument("--template", type=Path, help="DOCX to append to (default: empty document)")
    p_markdown.add_argument("--toc", action="store_true", help="Insert a table of contents before the content")
    p_markdown.set_defaults(func=handle_markdown)

    p_extract = subparsers.add_parser("extract", help="Extract raw text from a DOCX file")
    p_extract.add_argument("input", type=Path, help="Input DOCX file")
    p_extract.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_extract.set_defaults(func=handle_extract)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    try:
        args.func(args)
    except DocWriterError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
