from services.deliverables.dispatcher import DeliverableDispatcher
from services.deliverables.pdf import render_markdown_pdf


__all__ = ["DeliverableDispatcher", "render_markdown_pdf"]
