from dataclasses import dataclass, field

from draftdesk.content.models import UnresolvedReference
from draftdesk.database.models import BlogRecord
from draftdesk.drafts.exceptions import UploadFailedError


@dataclass
class SaveResult:
    """Outcome of saving a draft as a blog post.

    ``completed`` is False when some images failed to upload or some
    references stayed unresolved; the draft is then kept open for a retry.
    """

    post: BlogRecord
    failures: list[UploadFailedError] = field(default_factory=list)
    unresolved: list[UnresolvedReference] = field(default_factory=list)
    completed: bool = True
