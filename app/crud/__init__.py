from app.crud.base import CRUDBase
from .survey import survey
from .mapping import mapping
from .learned_mapping import learned_mapping_crud
from .user import user

__all__ = ["CRUDBase", "survey", "mapping", "learned_mapping_crud", "user"]
