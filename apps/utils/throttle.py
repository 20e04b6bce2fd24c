from rest_framework.throttling import UserRateThrottle


class BurstRateThrottle(UserRateThrottle):
    """
    Short window, catches double-submits and scripted hammering.
    Scope: 'burst'
    """
    scope = 'burst'


class SustainedRateThrottle(UserRateThrottle):
    """
    General API usage.
    """
    scope = 'sustained'


class PaymentSyncThrottle(UserRateThrottle):
    """
    Clients poll sync-payment every few seconds; keep them from going faster.
    """
    scope = 'payment_sync'
