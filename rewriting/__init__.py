from rewriting.engine import (
    rewrite_url,
    rewrite_srcset,
    rewrite_css,
    rewrite_html,
)
