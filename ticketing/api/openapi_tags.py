"""
OpenAPI tags and security schemes for the ticketing API docs.
"""

tags_metadata = [
    {
        "name": "users",
        "description": """
**Accounts**

Signup and signin, self-service profile and password management, public
profiles, and admin user management.

**Authentication Flow:**
1. Sign up or sign in to get a bearer token
2. Send it as `Authorization: Bearer <token>`
3. Changing the password invalidates earlier tokens
        """,
    },
    {
        "name": "events",
        "description": """
**Events and Ticket Tiers**

Create events as drafts, publish them with a fee policy, cancel whole events
or single ticket tiers. Cancellations deactivate the affected bookings.

**Listing:** every list endpoint accepts field filters, bracketed range
operators, `sort`, `fields`, `search`, `loc` and `paginate`.
        """,
    },
    {
        "name": "bookings",
        "description": """
**Checkout, Bookings and Refunds**

Stripe checkout sessions for paid orders, immediate booking for free
orders, and the attendee refund request workflow resolved by organizers.
        """,
    },
    {
        "name": "images",
        "description": "Stored event and user photos.",
    },
    {
        "name": "Health",
        "description": "Service and database health.",
    },
    {
        "name": "Monitoring",
        "description": "Prometheus metrics in exposition format.",
    },
]

security_schemes = {
    "BearerAuth": {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
        "description": "JWT access token from `/api/v1/users/signin`",
    }
}
