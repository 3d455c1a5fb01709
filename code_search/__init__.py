"""Code search - incremental indexing and hybrid search over local source trees."""
