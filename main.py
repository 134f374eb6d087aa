"""
Main entry point for the knowledge base client.

Lists, uploads and deletes knowledge bases, and asks questions against
selected ones. Use --gui for the web interface.
"""

import os
import sys
import atexit
import argparse
from pathlib import Path
from typing import List
from dotenv import load_dotenv

from kbclient import KnowledgeBaseSession, KnowledgeBaseError
from kbclient.models import format_file_size


# Global session for cleanup
_session = None


def cleanup_session():
    """Cleanup session on exit."""
    global _session

    if _session:
        print("\n[Main] Shutting down session...")
        _session.shutdown(wait=True, timeout=30)
        _session = None


def open_session() -> KnowledgeBaseSession:
    """
    Create a session and load the knowledge base list.

    Returns:
        The started session
    """
    global _session

    _session = KnowledgeBaseSession()
    atexit.register(cleanup_session)
    _session.start().get(timeout=_session.timeout)
    return _session


def print_knowledge_bases(session: KnowledgeBaseSession) -> None:
    """Print the knowledge base list."""
    entries = session.registry.entries
    if not entries:
        print('[Main] No knowledge bases yet')
        return

    print(f'[Main] {len(entries)} knowledge base(s):')
    for kb in entries:
        print(f'  [{kb.id}] {kb.name} - {format_file_size(kb.file_size)}, '
              f'{kb.question_count} question(s), uploaded {kb.uploaded_at}')


def show_knowledge_base(session: KnowledgeBaseSession, kb_id: int) -> None:
    """Fetch and print a single knowledge base."""
    kb = session.registry.fetch(kb_id).get(timeout=session.timeout)
    print(f'[{kb.id}] {kb.name}')
    print(f'  File:          {kb.original_filename} ({kb.content_type})')
    print(f'  Size:          {format_file_size(kb.file_size)}')
    print(f'  Uploaded:      {kb.uploaded_at}')
    print(f'  Last accessed: {kb.last_accessed_at or "-"}')
    print(f'  Accesses:      {kb.access_count}')
    print(f'  Questions:     {kb.question_count}')


def upload_file(session: KnowledgeBaseSession, file_path: Path, name: str) -> bool:
    """
    Upload a file as a knowledge base.

    Args:
        session: Started session
        file_path: File to upload
        name: Optional display name

    Returns:
        True on success
    """
    session.upload.select_file(file_path, name=name)
    future = session.upload.submit()
    if future is None:
        print(f'[Error] {session.upload.error}')
        return False

    result = future.get(timeout=session.timeout)
    if result is None:
        print(f'[Error] {session.upload.error}')
        return False

    print(f'[Main] Uploaded "{result.name}" (id {result.id}), '
          f'{format_file_size(result.file_size)}, {result.content_length} characters extracted')
    if result.duplicate:
        print('[Main] Identical content was already stored, existing file reused')
    return True


def delete_knowledge_base(session: KnowledgeBaseSession, kb_id: int, assume_yes: bool) -> bool:
    """
    Delete a knowledge base after confirmation.

    Args:
        session: Started session
        kb_id: Knowledge base ID
        assume_yes: Skip the interactive confirmation

    Returns:
        True on success
    """
    kb = session.registry.get(kb_id)
    if kb is None:
        print(f'[Error] Knowledge base {kb_id} not found')
        return False

    pending = session.deletion.request_delete(kb.id, kb.name)
    if pending is None:
        print(f'[Error] Knowledge base {kb_id} is already being deleted')
        return False
    if not assume_yes:
        answer = input(f'{pending.prompt} [y/N] ')
        if answer.strip().lower() not in ('y', 'yes'):
            session.deletion.cancel()
            print('[Main] Cancelled')
            return False

    future = session.deletion.confirm()
    if future is None or not future.get(timeout=session.timeout):
        print(f'[Error] {session.deletion.error}')
        return False

    print(f'[Main] Deleted knowledge base "{kb.name}"')
    return True


def ask_question(session: KnowledgeBaseSession, kb_ids: List[int], question: str) -> bool:
    """
    Ask a question against the given knowledge bases.

    Args:
        session: Started session
        kb_ids: Knowledge base IDs to select
        question: Question text

    Returns:
        True if an answer was received
    """
    for kb_id in dict.fromkeys(kb_ids):
        if kb_id in session.selection:
            continue
        if not session.selection.toggle(kb_id):
            print(f'[Warning] Knowledge base {kb_id} not found, skipped')

    future = session.query.ask(question)
    if future is None:
        print(f'[Error] {session.query.last_error}')
        return False

    print(f'[Main] Asking: {question}')
    turn = future.get(timeout=session.timeout)
    if turn is None:
        return False

    source = f' (from "{turn.knowledge_base_name}")' if turn.knowledge_base_name else ''
    print(f'\n[Main] Answer{source}:\n{turn.content}')
    return not turn.is_error


def main():
    """Main entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description='Upload documents as knowledge bases and ask questions about them'
    )
    parser.add_argument('--gui', action='store_true',
                        help='Launch GUI mode')
    parser.add_argument('--list', action='store_true',
                        help='List knowledge bases')
    parser.add_argument('--show', type=int, metavar='ID',
                        help='Show details of a knowledge base')
    parser.add_argument('--upload', type=str, metavar='FILE',
                        help='Upload a document (PDF, DOCX, DOC, TXT, MD)')
    parser.add_argument('--name', type=str,
                        help='Knowledge base name for --upload (defaults to the file name)')
    parser.add_argument('--delete', type=int, metavar='ID',
                        help='Delete a knowledge base')
    parser.add_argument('--yes', action='store_true',
                        help='Do not ask for confirmation with --delete')
    parser.add_argument('--ask', type=str, metavar='QUESTION',
                        help='Ask a question (requires --kb)')
    parser.add_argument('--kb', type=int, action='append', metavar='ID',
                        help='Knowledge base to answer from (repeatable)')

    args = parser.parse_args()

    # GUI mode
    if args.gui:
        from gui import GradioApp
        port = int(os.environ.get('GRADIO_PORT', 7860))
        app = GradioApp()
        app.launch(server_port=port)
        return

    if args.ask and not args.kb:
        parser.error('--ask requires at least one --kb')
    if not any([args.list, args.show is not None, args.upload, args.delete is not None, args.ask]):
        parser.error('one of --list, --show, --upload, --delete, --ask or --gui is required')

    try:
        session = open_session()

        if args.list:
            print_knowledge_bases(session)
            ok = True
        elif args.show is not None:
            show_knowledge_base(session, args.show)
            ok = True
        elif args.upload:
            ok = upload_file(session, Path(args.upload), args.name)
        elif args.delete is not None:
            ok = delete_knowledge_base(session, args.delete, args.yes)
        else:
            ok = ask_question(session, args.kb, args.ask)

    except KeyboardInterrupt:
        print('\n[Main] Interrupted by user')
        sys.exit(130)
    except (KnowledgeBaseError, TimeoutError) as e:
        print(f'[Error] {e}')
        sys.exit(1)

    if not ok:
        sys.exit(1)


if __name__ == '__main__':
    main()
