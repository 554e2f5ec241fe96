from .resolver import EmbedDescriptor, EmbedKind, EmbedResolver, NeedsConfiguration

__all__ = ["EmbedDescriptor", "EmbedKind", "EmbedResolver", "NeedsConfiguration"]
