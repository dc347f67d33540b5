import asyncio
import json
from dataclasses import dataclass
from pathlib import Path

import typer

from draftdesk.config.settings import Settings
from draftdesk.content.parser import document_to_dict
from draftdesk.database.connection import close_pool, init_pool
from draftdesk.database.repositories.blog_repository import BlogRepository
from draftdesk.drafts.local_storage import FileLocalStorage
from draftdesk.drafts.manager import DraftManager
from draftdesk.drafts.models import PublicationStatus
from draftdesk.logging.logger import Log
from draftdesk.publishing.exceptions import PublishError
from draftdesk.publishing.publisher import PostPublisher
from draftdesk.storage.base import BaseObjectStore
from draftdesk.storage.factory import ObjectStoreFactory

app = typer.Typer(help="Manage locally saved blog drafts.", no_args_is_help=True)


@dataclass
class Session:
    settings: Settings
    manager: DraftManager
    object_store: BaseObjectStore
    publisher: PostPublisher


def build_session(settings: Settings) -> Session:
    """Wire the draft manager and publisher from settings."""
    object_store = ObjectStoreFactory.create(settings)
    local_storage = FileLocalStorage(Path(settings.drafts_dir), settings.max_local_drafts)
    manager = DraftManager(settings, local_storage, object_store)
    publisher = PostPublisher(manager, BlogRepository(), object_store)
    return Session(settings, manager, object_store, publisher)


def _session() -> Session:
    settings = Settings()
    Log.configure(settings.log_level)
    return build_session(settings)


@app.command("list")
def list_drafts() -> None:
    """List drafts saved on this machine."""
    session = _session()
    summaries = asyncio.run(session.manager.list_drafts())
    if not summaries:
        typer.echo("No local drafts.")
        return
    for s in summaries:
        saved = s.last_saved.isoformat() if s.last_saved else "-"
        kind = "auto" if s.is_auto_save else "manual"
        typer.echo(f"{s.id}  {s.title or '(untitled)'}  images={s.image_count}  {saved} ({kind})")


@app.command()
def show(draft_id: str) -> None:
    """Print a draft as JSON."""
    session = _session()
    draft = asyncio.run(session.manager.resume_draft(draft_id))
    if draft is None:
        typer.echo(f"Draft {draft_id} not found", err=True)
        raise typer.Exit(code=1)
    payload = {
        "id": draft.id,
        "title": draft.title,
        "slug": draft.slug,
        "excerpt": draft.excerpt,
        "status": str(draft.metadata.status),
        "tags": draft.metadata.tags,
        "content": document_to_dict(draft.content),
        "needs_reselection": [img.id for img in draft.images_needing_reselection()],
    }
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def discard(draft_id: str) -> None:
    """Delete a locally saved draft."""
    session = _session()
    if not asyncio.run(session.manager.delete_draft(draft_id)):
        typer.echo(f"Draft {draft_id} not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Draft {draft_id} deleted")


@app.command()
def publish(
    draft_id: str,
    status: PublicationStatus = typer.Option(PublicationStatus.PUBLISHED, help="Post status."),
    cleanup: bool = typer.Option(False, help="Remove stored images the post no longer uses."),
) -> None:
    """Save a local draft as a blog post."""
    session = _session()
    init_pool(session.settings)
    try:
        code = asyncio.run(_publish(session, draft_id, status, cleanup))
    finally:
        close_pool()
    if code:
        raise typer.Exit(code=code)


async def _publish(
    session: Session, draft_id: str, status: PublicationStatus, cleanup: bool
) -> int:
    draft = await session.manager.resume_draft(draft_id)
    if draft is None:
        typer.echo(f"Draft {draft_id} not found", err=True)
        return 1
    stale = draft.images_needing_reselection()
    if stale:
        typer.echo(
            f"{len(stale)} images of draft {draft_id} must be selected again before publishing",
            err=True,
        )
        return 1

    await session.object_store.boot()
    try:
        result = await session.publisher.save(status, cleanup_unused=cleanup)
    except PublishError as exc:
        typer.echo(f"Publishing failed: {exc}", err=True)
        return 1
    finally:
        await session.object_store.close()

    typer.echo(f"Saved post {result.post.id} ({result.post.status})")
    if not result.completed:
        typer.echo(
            f"{len(result.failures)} uploads failed, {len(result.unresolved)} images unresolved",
            err=True,
        )
        return 2
    return 0


def main() -> None:
    app()


if __name__ == "__main__":
    main()
