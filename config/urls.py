from django.urls import include, path

urlpatterns = [
    path("api/", include("messenger.urls")),
    path("", include("relay.urls")),
]
