from django.urls import path
from . import views

urlpatterns = [
    # Uploads
    path("upload", views.upload, name="relay_upload"),
    path("upload-gallery", views.upload_gallery, name="relay_upload_gallery"),

    # Stored media
    path("media/<str:chat_id>/<str:filename>", views.media, name="relay_media"),
    path("gallery/<str:user_id>/<str:filename>", views.gallery, name="relay_gallery"),

    # Health and debug listings
    path("health", views.health, name="relay_health"),
    path("debug/files", views.debug_files, name="relay_debug_files"),
    path("debug/gallery", views.debug_gallery, name="relay_debug_gallery"),
]
