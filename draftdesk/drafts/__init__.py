from draftdesk.drafts.autosave import AutoSaver
from draftdesk.drafts.manager import DraftManager
from draftdesk.drafts.models import Draft, ImageState, StagedImage, UploadReport

__all__ = ["AutoSaver", "Draft", "DraftManager", "ImageState", "StagedImage", "UploadReport"]
