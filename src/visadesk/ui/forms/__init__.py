from visadesk.ui.forms.service_form import ServiceDeletePanel, ServiceFormWidget

__all__ = [
    "ServiceDeletePanel",
    "ServiceFormWidget",
]
