"""Periodic jobs: archiving expired AICs, batching refunds and reporting subscriptions."""