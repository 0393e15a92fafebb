from rest_framework.renderers import JSONRenderer


class EnvelopeJSONRenderer(JSONRenderer):
    """
    Wraps successful payloads as {"data": ...}. Error bodies from
    `api_exception_handler` and already-enveloped paginated pages pass through.
    """

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = (renderer_context or {}).get("response")
        if data is None or response is None:
            return super().render(data, accepted_media_type, renderer_context)

        if response.status_code >= 400 or getattr(response, "enveloped", False):
            payload = data
        elif isinstance(data, dict) and "error" in data and len(data) == 1:
            payload = data
        else:
            payload = {"data": data}
        return super().render(payload, accepted_media_type, renderer_context)
