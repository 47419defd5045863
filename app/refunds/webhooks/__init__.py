"""
Gateway refund webhook handling.

- signature: HMAC-SHA256 verification of the raw body
- normalizer: payload shapes -> RefundEvent
- views: signed webhook endpoints (inline and queued)
"""
