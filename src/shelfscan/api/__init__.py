"""External API clients used by the pipeline.

Submodules:
    openai_vision -- OpenAI chat-completions vision provider
    gemini        -- Google Gemini generateContent vision provider
    google_books  -- Google Books volume search with fuzzy match scoring
"""
