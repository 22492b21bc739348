"""Import every model module so they all register with ``Base.metadata``."""

from app.auth.models import Session, User  # noqa: F401
from app.cases.models import Case, CaseNote  # noqa: F401
from app.deadlines.models import Deadline  # noqa: F401
from app.documents.models import Document  # noqa: F401
