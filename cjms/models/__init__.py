"""Database tables and models for AICs, subscriptions, refunds and status history."""