"""EasyPages - admin front end for Cloudflare Pages deployments."""
