from dataclasses import dataclass

from embedoc.models.document import DocumentModel


@dataclass(kw_only=True)
class EmbeddedModel(DocumentModel):
    """
    A value object stored inline in its owner's document.

    It has no identity of its own and is never stored as a separate document.
    Relation fields inside it hold references to top-level entities.
    """

    def __post_init__(self):
        self._coerce_fields()
