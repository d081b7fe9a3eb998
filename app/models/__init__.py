from .learned_mapping import LearnedMapping
from .mapping import Mapping, MappingKind, MappingSource
from .survey import DataCategory, ProviderType, Survey, SurveyRow
from .user import User
